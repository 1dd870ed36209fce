"""End-to-end scenarios through the ThinkTwice hub."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from conftest import T0, FakeClock, make_product
from thinktwice.config import ThinkTwiceConfig
from thinktwice.core import ThinkTwice, render_summary
from thinktwice.errors import UnsupportedMarketplace
from thinktwice.extractor import PageInfo
from thinktwice.gate import View
from thinktwice.notifications import LogNotificationSink
from thinktwice.scheduler.jobs import Scheduler
from thinktwice.store import MemoryBackend
from thinktwice.store.types import ProductState, Reminder, ReminderStatus
from thinktwice.timeutil import now_ms

URL = "https://www.amazon.com/Noise-Cancelling/dp/B0TEST0001?ref=x"


@pytest.fixture
def config(tmp_path: Path) -> ThinkTwiceConfig:
    return ThinkTwiceConfig(
        store_path=tmp_path / "storage.json",
        history_dir=tmp_path / "history",
        pid_file=tmp_path / "thinktwice.pid",
    )


@pytest.fixture
def sink() -> LogNotificationSink:
    return LogNotificationSink()


@pytest.fixture
def open_url() -> MagicMock:
    return MagicMock()


@pytest.fixture
def app(config, sink, open_url, clock: FakeClock) -> ThinkTwice:
    a = ThinkTwice(config, backend=MemoryBackend(), sink=sink, clock=clock, open_url=open_url)
    yield a
    a.timers.cancel_all()


def _page() -> PageInfo:
    return PageInfo(url=URL, title="Noise Cancelling Headphones", price="$199.99")


class TestLifecycleScenarios:
    @pytest.mark.asyncio
    async def test_sleep_on_it_then_return_then_completion(self, app, clock, sink):
        product = make_product()
        await app.start()

        rid = await app.sleep_on_it(product, 60_000)
        reminder = await app.store.get_reminder(rid)
        assert reminder.reminder_time == T0 + 60_000

        clock.advance(100)
        decision = await app.decide(product.id, tab_id=2)
        assert decision.view is View.EARLY_RETURN
        assert decision.reminder.id == rid

        clock.advance(59_900)
        assert await app.completion.handle(rid) is True
        assert (await app.store.get_product(product.id)).state is ProductState.DONT_NEED_IT
        assert (await app.store.get_reminder(rid)).status is ReminderStatus.COMPLETED
        assert rid in sink.shown

        clock.advance(1)
        assert (await app.decide(product.id, tab_id=2)).hidden

    @pytest.mark.asyncio
    async def test_need_it_hides_and_drops_reminder(self, app):
        product = make_product()
        rid = await app.sleep_on_it(product, 60_000)
        await app.need_it(product.id, rid)

        assert (await app.store.get_product(product.id)).state is ProductState.I_NEED_THIS
        assert await app.store.get_reminder(rid) is None
        assert not app.timers.is_armed(rid)
        assert (await app.decide(product.id)).hidden

    @pytest.mark.asyncio
    async def test_changed_my_mind_re_enables_prompt(self, app):
        product = make_product()
        await app.dont_need_it(product)
        assert (await app.decide(product.id)).hidden

        await app.changed_my_mind(product.id)
        assert (await app.decide(product.id)).view is View.PRODUCT

    @pytest.mark.asyncio
    async def test_global_close_hides_never_seen_products(self, app):
        await app.pause("close")
        assert (await app.decide("amazon-NEVERSEEN")).hidden
        await app.resume()
        assert (await app.decide("amazon-NEVERSEEN")).view is View.PRODUCT

    @pytest.mark.asyncio
    async def test_live_timer_completes_reminder(self, config, sink):
        app = ThinkTwice(config, backend=MemoryBackend(), sink=sink, clock=now_ms)
        await app.start()
        rid = await app.sleep_on_it(make_product(), 30)

        await asyncio.sleep(0.15)
        await app.timers.drain()

        assert (await app.store.get_reminder(rid)).status is ReminderStatus.COMPLETED
        assert rid in sink.shown
        await app.stop()


class TestRestart:
    @pytest.mark.asyncio
    async def test_start_rearms_future_and_completes_overdue(self, app, clock, sink):
        product = make_product()
        other = make_product("B0OTHER001")
        for p in (product, other):
            await app.store.save_product(p.with_state(ProductState.SLEEPING_ON_IT))
        await app.store.save_reminder(Reminder("future", product.id, T0 + 60_000, 60_000))
        await app.store.save_reminder(Reminder("past", other.id, T0 - 1, 60_000))

        armed, overdue = await app.start()

        assert (armed, overdue) == (1, 1)
        assert app.timers.is_armed("future")
        assert (await app.store.get_reminder("past")).status is ReminderStatus.COMPLETED
        assert (await app.store.get_product(other.id)).state is ProductState.DONT_NEED_IT
        assert list(sink.shown) == ["past"]

    @pytest.mark.asyncio
    async def test_sweep_completes_due_reminders_without_timer(self, app, clock):
        product = make_product()
        await app.store.save_product(product.with_state(ProductState.SLEEPING_ON_IT))
        await app.store.save_reminder(Reminder("r1", product.id, T0 + 1000, 1000))

        assert await app.sweep_due() == 0
        clock.advance(1000)
        assert await app.badge() == "1"
        assert await app.sweep_due() == 1
        assert await app.badge() == ""
        assert await app.sweep_due() == 0

    @pytest.mark.asyncio
    async def test_sweep_skips_armed_reminders(self, app, clock):
        await app.start()
        rid = await app.sleep_on_it(make_product(), 1000)
        clock.advance(1000)
        assert await app.sweep_due() == 0
        assert (await app.store.get_reminder(rid)).is_pending

    @pytest.mark.asyncio
    async def test_sweep_skips_fired_timer_still_completing(self, app, sink):
        product = make_product()
        await app.store.save_product(product.with_state(ProductState.SLEEPING_ON_IT))
        await app.store.save_reminder(Reminder("r1", product.id, T0, 1000))
        release = asyncio.Event()

        async def slow_completion(reminder_id):
            await release.wait()
            await app.completion.handle(reminder_id)

        app.timers.on_fire(slow_completion)
        app.timers.arm("r1", T0)
        await asyncio.sleep(0.05)
        assert not app.timers.is_armed("r1")
        assert app.timers.is_in_flight("r1")

        assert await app.sweep_due() == 0
        release.set()
        await app.timers.drain()

        assert list(sink.shown) == ["r1"]
        assert not app.timers.is_in_flight("r1")

    @pytest.mark.asyncio
    async def test_scheduler_sweep_survives_corrupt_journal_record(self, app, config, sink):
        product = make_product()
        await app.store.save_product(product.with_state(ProductState.SLEEPING_ON_IT))
        await app.store.save_reminder(Reminder("r1", product.id, T0, 1000))
        record = app.journal.path_for(product.id)
        record.parent.mkdir(parents=True)
        record.write_text("---\nkey: [unclosed\n---\n", encoding="utf-8")

        await Scheduler(app, config).run_once()

        assert (await app.store.get_reminder("r1")).status is ReminderStatus.COMPLETED
        assert list(sink.shown) == ["r1"]


class TestPages:
    @pytest.mark.asyncio
    async def test_open_page_builds_product_from_page(self, app):
        page = await app.open_page("amazon", URL, _page())
        assert page.product_key == "amazon-B0TEST0001"
        assert page.decision.view is View.PRODUCT
        assert page.decision.product.name == "Noise Cancelling Headphones"
        assert page.tab_id == 1

    @pytest.mark.asyncio
    async def test_open_page_tracks_sibling_decisions(self, app):
        page = await app.open_page("amazon", URL, _page(), tab_id=5)
        await app.sleep_on_it(page.decision.product, 60_000, tab_id=6)
        assert page.decision.view is View.EARLY_RETURN

        app.close_page(5)
        assert app.store.notifier.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_non_product_url(self, app):
        assert await app.open_page("amazon", "https://www.amazon.com/gp/cart") is None

    @pytest.mark.asyncio
    async def test_unsupported_marketplace(self, app):
        with pytest.raises(UnsupportedMarketplace):
            await app.open_page("ebay", "https://www.ebay.com/itm/123")

    def test_tab_ids_are_unique(self, app):
        assert [app.get_tab_id() for _ in range(3)] == [1, 2, 3]


class TestPause:
    @pytest.mark.asyncio
    async def test_timed_snooze(self, app, clock):
        await app.pause("30s")
        assert (await app.decide("amazon-X")).hidden
        clock.advance(30_000)
        assert (await app.decide("amazon-X")).view is View.PRODUCT

    @pytest.mark.asyncio
    async def test_unknown_preset(self, app):
        with pytest.raises(ValueError):
            await app.pause("forever")

    @pytest.mark.asyncio
    async def test_resume_clears_snooze(self, app):
        await app.pause("1day")
        await app.resume()
        assert (await app.decide("amazon-X")).view is View.PRODUCT


class TestSummary:
    @pytest.mark.asyncio
    async def test_summary_lists_pending_soonest_first(self, app, clock):
        later = make_product("B0LATER001", name="Desk Lamp", price=None)
        await app.sleep_on_it(later, 2 * 86_400_000)
        await app.sleep_on_it(make_product(), 3_600_000)
        await app.pause("1hour")

        summary = await app.summary()
        assert [p.name for _, p in summary.pending] == ["Noise Cancelling Headphones", "Desk Lamp"]
        assert summary.snooze_until == T0 + 3_600_000
        assert summary.stats["sleeping"] == 2

        text = render_summary(summary, clock())
        assert "Noise Cancelling Headphones [$199.99]: reminder in 1 hour" in text
        assert "Desk Lamp: reminder in 2 days" in text
        assert "(prompts paused, back in 1 hour)" in text

    @pytest.mark.asyncio
    async def test_empty_summary(self, app, clock):
        text = render_summary(await app.summary(), clock())
        assert "No reminders yet" in text


class TestNotificationClicks:
    @pytest.mark.asyncio
    async def test_view_product_button_opens_url(self, app, sink, open_url):
        product = make_product()
        rid = await app.sleep_on_it(product, 60_000)
        await app.completion.handle(rid)

        await app.notifications.handle_button(rid, 0)

        open_url.assert_called_once_with(product.url)
        assert rid not in sink.shown

    @pytest.mark.asyncio
    async def test_body_click_clears(self, app, sink):
        rid = await app.sleep_on_it(make_product(), 60_000)
        await app.completion.handle(rid)
        await app.notifications.handle_click(rid)
        assert rid not in sink.shown
