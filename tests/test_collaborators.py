"""Tests for history, entitlements and analytics collaborators."""

import asyncio
import json
import logging
from datetime import date, timedelta
from uuid import uuid4

import httpx
import pytest

from tryon.config import AnalyticsConfig
from tryon.models import HistoryEntry
from tryon.services import (
    Analytics,
    DailyQuotaEntitlements,
    Entitlements,
    HistoryStore,
    InMemoryHistoryStore,
    NullAnalytics,
    PlausibleAnalytics,
)


def make_entry(label: str) -> HistoryEntry:
    return HistoryEntry(
        result_id=uuid4(),
        subject_image=b"subject",
        garment_image=b"garment",
        result_image=label.encode(),
    )


class TestHistoryStore:

    def test_satisfies_protocol(self):
        assert isinstance(InMemoryHistoryStore(), HistoryStore)

    @pytest.mark.asyncio
    async def test_newest_first(self):
        store = InMemoryHistoryStore()

        for label in ("first", "second", "third"):
            await store.append(make_entry(label))

        assert [e.result_image for e in await store.list()] == [b"third", b"second", b"first"]

    @pytest.mark.asyncio
    async def test_capped_to_limit(self):
        store = InMemoryHistoryStore(limit=10)

        for i in range(15):
            await store.append(make_entry(f"entry-{i}"))

        entries = await store.list()
        assert len(entries) == 10
        assert entries[0].result_image == b"entry-14"
        assert entries[-1].result_image == b"entry-5"

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_not_lost(self):
        store = InMemoryHistoryStore(limit=100)

        await asyncio.gather(*(store.append(make_entry(f"e{i}")) for i in range(50)))

        entries = await store.list()
        assert len(entries) == 50
        assert len({e.id for e in entries}) == 50

    @pytest.mark.asyncio
    async def test_list_returns_a_copy(self):
        store = InMemoryHistoryStore()
        await store.append(make_entry("only"))

        snapshot = await store.list()
        snapshot.clear()

        assert len(await store.list()) == 1

    @pytest.mark.asyncio
    async def test_clear(self):
        store = InMemoryHistoryStore()
        await store.append(make_entry("gone"))

        await store.clear()

        assert await store.list() == []


class TestDailyQuotaEntitlements:

    def test_satisfies_protocol(self):
        assert isinstance(DailyQuotaEntitlements(), Entitlements)

    def test_free_user_allowance(self):
        entitlements = DailyQuotaEntitlements(daily_limit=2)

        assert not entitlements.is_entitled()
        assert entitlements.remaining_free_uses_today() == 2
        entitlements.record_use()
        entitlements.record_use()
        entitlements.record_use()
        assert entitlements.remaining_free_uses_today() == 0

    def test_pro_user(self):
        assert DailyQuotaEntitlements(is_pro=True).is_entitled()

    def test_resets_on_new_day(self):
        day = {"value": date(2024, 3, 1)}
        entitlements = DailyQuotaEntitlements(daily_limit=2, today=lambda: day["value"])

        entitlements.record_use()
        entitlements.record_use()
        assert entitlements.remaining_free_uses_today() == 0

        day["value"] += timedelta(days=1)

        assert entitlements.remaining_free_uses_today() == 2


class TestAnalytics:

    def test_null_analytics(self):
        analytics = NullAnalytics()

        assert isinstance(analytics, Analytics)
        assert analytics.track("tryon_interaction", {"action": "started"}) is None

    def test_disabled_without_domain(self):
        analytics = PlausibleAnalytics(AnalyticsConfig(endpoint="https://plausible.test/api/event"))

        assert not analytics.enabled
        analytics.track("tryon_interaction")

    def test_no_event_loop_drops_event(self):
        seen = []
        analytics = PlausibleAnalytics(
            AnalyticsConfig(endpoint="https://plausible.test/api/event", domain="tryon.app"),
            transport=httpx.MockTransport(lambda request: seen.append(request) or httpx.Response(202)),
        )

        analytics.track("tryon_interaction", {"action": "started"})

        assert seen == []

    @pytest.mark.asyncio
    async def test_event_body(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(202)

        analytics = PlausibleAnalytics(
            AnalyticsConfig(endpoint="https://plausible.test/api/event", domain="tryon.app"),
            transport=httpx.MockTransport(handler),
        )

        analytics.track("tryon_interaction", {"action": "succeeded"})
        await analytics.close()

        assert seen == [{
            "name": "tryon_interaction",
            "url": "https://tryon.app/tryon_interaction",
            "domain": "tryon.app",
            "props": {"action": "succeeded"},
        }]

    @pytest.mark.asyncio
    async def test_pageview_is_ignored(self):
        seen = []
        analytics = PlausibleAnalytics(
            AnalyticsConfig(endpoint="https://plausible.test/api/event", domain="tryon.app"),
            transport=httpx.MockTransport(lambda request: seen.append(request) or httpx.Response(202)),
        )

        analytics.track("pageview")
        await analytics.flush()

        assert seen == []

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self, caplog):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        analytics = PlausibleAnalytics(
            AnalyticsConfig(endpoint="https://plausible.test/api/event", domain="tryon.app"),
            transport=httpx.MockTransport(handler),
        )

        with caplog.at_level(logging.WARNING, logger="tryon.services.analytics"):
            analytics.track("tryon_interaction", {"action": "failed"})
            await analytics.flush()

        assert "failed" in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged(self, caplog):
        def handler(request):
            raise RuntimeError("boom")

        analytics = PlausibleAnalytics(
            AnalyticsConfig(endpoint="https://plausible.test/api/event", domain="tryon.app"),
            transport=httpx.MockTransport(handler),
        )

        with caplog.at_level(logging.WARNING, logger="tryon.services.analytics"):
            analytics.track("tryon_interaction", {"action": "started"})
            await analytics.flush()

        assert "boom" in caplog.text
