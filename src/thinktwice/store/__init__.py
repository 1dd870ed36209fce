"""Persistence layer.

Layout of the "local" storage area (one entry per logical collection):
    thinktwice_products             {productKey: Product}
    thinktwice_reminders            [Reminder]
    thinktwice_settings             Settings
    thinktwice_tab_session_state    {tabId: TabSessionState}
    thinktwice_snooze               epoch ms (absent when not snoozed)
    thinktwice_global_plugin_closed bool
"""

from thinktwice.store.backend import JsonFileBackend, MemoryBackend, StorageBackend
from thinktwice.store.entities import GATE_KEYS, EntityStore, Keys, StoreSnapshot
from thinktwice.store.notifier import LOCAL_AREA, ChangeNotifier

__all__ = [
    "GATE_KEYS",
    "LOCAL_AREA",
    "ChangeNotifier",
    "EntityStore",
    "JsonFileBackend",
    "Keys",
    "MemoryBackend",
    "StorageBackend",
    "StoreSnapshot",
]
