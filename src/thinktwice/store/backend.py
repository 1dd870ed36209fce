"""Key-value storage backends.

A backend is the raw substrate under the entity store: string keys mapped to
JSON-serialisable values, no transactions. Concurrent read-modify-write of
one key is last-writer-wins. Every successful write publishes the touched
keys on the shared ``ChangeNotifier``, including to the writing context.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from thinktwice.errors import StoreUnavailable
from thinktwice.store.notifier import LOCAL_AREA, ChangeNotifier

logger = logging.getLogger(__name__)


@runtime_checkable
class StorageBackend(Protocol):
    """Protocol that all storage substrates must implement."""

    notifier: ChangeNotifier

    async def get(self, key: str) -> Any | None:
        """Return the stored value, or None when absent."""
        ...

    async def set(self, key: str, value: Any) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def keys(self) -> list[str]: ...


class MemoryBackend:
    """Dict-backed substrate for a single process (and tests)."""

    def __init__(self, notifier: ChangeNotifier | None = None) -> None:
        self.notifier = notifier or ChangeNotifier()
        self._data: dict[str, Any] = {}
        self.available = True

    def _check(self) -> None:
        if not self.available:
            raise StoreUnavailable("memory backend marked unavailable")

    async def get(self, key: str) -> Any | None:
        self._check()
        # Hand out copies so callers can't mutate stored state in place
        return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        self._check()
        self._data[key] = copy.deepcopy(value)
        await self.notifier.publish({key}, LOCAL_AREA)

    async def remove(self, key: str) -> None:
        self._check()
        if self._data.pop(key, None) is not None:
            await self.notifier.publish({key}, LOCAL_AREA)

    async def keys(self) -> list[str]:
        self._check()
        return list(self._data)


class JsonFileBackend:
    """Single JSON document on local disk holding the whole "local" area.

    Blocking I/O runs in worker threads. Writes inside one process are
    serialised; writes from different processes race at the document level.
    ``watch()`` polls the file so writes made by other processes reach this
    process's subscribers too.
    """

    def __init__(self, path: Path, notifier: ChangeNotifier | None = None) -> None:
        self.path = path
        self.notifier = notifier or ChangeNotifier()
        self._write_lock = asyncio.Lock()
        self._last_mtime: float | None = None
        self._last_doc: dict[str, Any] = {}

    # ── Document I/O (worker thread) ─────────────────────────

    def _read_document(self) -> dict[str, Any]:
        try:
            if not self.path.exists():
                return {}
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreUnavailable(f"cannot read {self.path}: {e}") from e
        if not text.strip():
            return {}
        try:
            doc = json.loads(text)
        except json.JSONDecodeError as e:
            raise StoreUnavailable(f"corrupt store document {self.path}: {e}") from e
        if not isinstance(doc, dict):
            raise StoreUnavailable(f"store document {self.path} is not an object")
        return doc

    def _write_document(self, doc: dict[str, Any]) -> None:
        # Unique temp file per write: other processes replace the same target
        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                json.dump(doc, tmp, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StoreUnavailable(f"cannot write {self.path}: {e}") from e
        self._remember(doc)

    def _remember(self, doc: dict[str, Any]) -> None:
        try:
            self._last_mtime = self.path.stat().st_mtime
        except OSError:
            self._last_mtime = None
        self._last_doc = copy.deepcopy(doc)

    def _mutate(self, key: str, value: Any, delete: bool) -> bool:
        """Read-modify-write in one thread hop. Returns True if anything changed."""
        doc = self._read_document()
        if delete:
            if key not in doc:
                return False
            del doc[key]
        else:
            doc[key] = value
        self._write_document(doc)
        return True

    # ── Backend contract ─────────────────────────────────────

    async def get(self, key: str) -> Any | None:
        doc = await asyncio.to_thread(self._read_document)
        return doc.get(key)

    async def set(self, key: str, value: Any) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._mutate, key, value, False)
        await self.notifier.publish({key}, LOCAL_AREA)

    async def remove(self, key: str) -> None:
        async with self._write_lock:
            changed = await asyncio.to_thread(self._mutate, key, None, True)
        if changed:
            await self.notifier.publish({key}, LOCAL_AREA)

    async def keys(self) -> list[str]:
        doc = await asyncio.to_thread(self._read_document)
        return list(doc)

    # ── Cross-process change detection ───────────────────────

    async def poll_external_changes(self) -> frozenset[str]:
        """Publish keys changed on disk since our last read or write."""
        try:
            mtime = self.path.stat().st_mtime if self.path.exists() else None
        except OSError as e:
            logger.warning("Cannot stat %s: %s", self.path, e)
            return frozenset()
        if mtime == self._last_mtime:
            return frozenset()

        async with self._write_lock:
            doc = await asyncio.to_thread(self._read_document)
            previous = self._last_doc
            self._remember(doc)

        changed = frozenset(
            key
            for key in set(previous) | set(doc)
            if previous.get(key) != doc.get(key)
        )
        if changed:
            logger.debug("External store change: %s", sorted(changed))
            await self.notifier.publish(changed, LOCAL_AREA)
        return changed

    async def watch(self, shutdown_event: asyncio.Event, interval: float = 2.0) -> None:
        """Poll for external writes until shutdown_event is set."""
        logger.info("Watching %s for external changes (every %.1fs)", self.path, interval)
        # Baseline so pre-existing content isn't reported as a change
        try:
            self._remember(await asyncio.to_thread(self._read_document))
        except StoreUnavailable as e:
            logger.error("Store watch baseline failed: %s", e)

        while not shutdown_event.is_set():
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=interval)
                break
            except asyncio.TimeoutError:
                pass
            try:
                await self.poll_external_changes()
            except StoreUnavailable as e:
                logger.error("Store watch failed: %s", e)
        logger.info("Store watch stopped.")
