"""
Unit tests for premium events and the notifier.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from service_premium.app.events import (
    EventNotifier, PremiumAdded, PremiumCodeCreated, PremiumEvent, PremiumRemoved
)


@pytest.fixture
def notifier(metrics):
    """Fixture for an event notifier with metrics."""
    return EventNotifier(metrics)


class TestEvents:
    """Test cases for event records."""

    def test_to_dict(self):
        at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        event = PremiumAdded(entity_id="guild-1", expires_at=at, activated_by="admin", occurred_at=at)

        assert event.to_dict() == {
            "event_type": "premiumAdded",
            "occurred_at": "2026-01-01T00:00:00+00:00",
            "entity_id": "guild-1",
            "expires_at": "2026-01-01T00:00:00+00:00",
            "activated_by": "admin",
        }

    def test_events_are_immutable(self):
        event = PremiumRemoved(entity_id="guild-1")

        with pytest.raises(AttributeError):
            event.entity_id = "other"


class TestEventNotifier:
    """Test cases for EventNotifier."""

    @pytest.mark.asyncio
    async def test_delivers_to_matching_listeners_in_order(self, notifier):
        calls = []
        notifier.subscribe(PremiumRemoved, lambda e: calls.append(("first", e.entity_id)))
        notifier.subscribe(PremiumRemoved, lambda e: calls.append(("second", e.entity_id)))
        notifier.subscribe(PremiumCodeCreated, lambda e: calls.append(("code", e.code)))

        await notifier.publish(PremiumRemoved(entity_id="guild-1"))

        assert calls == [("first", "guild-1"), ("second", "guild-1")]

    @pytest.mark.asyncio
    async def test_async_listeners_are_awaited(self, notifier):
        listener = AsyncMock()
        notifier.subscribe(PremiumRemoved, listener)
        event = PremiumRemoved(entity_id="guild-1")

        await notifier.publish(event)

        listener.assert_awaited_once_with(event)

    @pytest.mark.asyncio
    async def test_listener_failure_is_isolated(self, notifier, metrics):
        failing = Mock(side_effect=RuntimeError("boom"))
        after = AsyncMock()
        notifier.subscribe(PremiumRemoved, failing)
        notifier.subscribe(PremiumRemoved, after)

        await notifier.publish(PremiumRemoved(entity_id="guild-1"))

        failing.assert_called_once()
        after.assert_awaited_once()
        assert metrics.sample("premium_listener_errors_total", event_type="premiumRemoved") == 1
        assert metrics.sample("premium_events_total", event_type="premiumRemoved") == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, notifier):
        listener = Mock()
        notifier.subscribe(PremiumRemoved, listener)

        assert notifier.unsubscribe(PremiumRemoved, listener) is True
        assert notifier.unsubscribe(PremiumRemoved, listener) is False
        await notifier.publish(PremiumRemoved(entity_id="guild-1"))

        listener.assert_not_called()
        assert notifier.listener_count(PremiumRemoved) == 0

    @pytest.mark.asyncio
    async def test_listener_may_unsubscribe_during_delivery(self, notifier):
        second = Mock()

        def once(event):
            notifier.unsubscribe(PremiumRemoved, once)

        notifier.subscribe(PremiumRemoved, once)
        notifier.subscribe(PremiumRemoved, second)

        await notifier.publish(PremiumRemoved(entity_id="guild-1"))
        await notifier.publish(PremiumRemoved(entity_id="guild-2"))

        assert second.call_count == 2
        assert notifier.listener_count(PremiumRemoved) == 1

    def test_subscribe_rejects_unknown_type(self, notifier):
        with pytest.raises(TypeError):
            notifier.subscribe(PremiumEvent, Mock())

    def test_subscribe_returns_listener(self, notifier):
        def handler(event):
            pass

        assert notifier.subscribe(PremiumRemoved, handler) is handler
        assert notifier.listener_count(PremiumRemoved) == 1
