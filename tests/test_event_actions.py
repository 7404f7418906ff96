"""Tests for eve.actions.event_actions — event handlers."""

from datetime import datetime, timedelta

import pytest

from eve.actions import event_actions
from eve.core.errors import InvariantViolation, NotFoundError
from eve.core.intents import CancelEvent, CreateEvent, DeleteEvent, FetchEvents, UpdateEvent


async def _create(make_request, title="Site visit", start="2026-06-01 10:00", end=None, **kw):
    intent = CreateEvent(title=title, start_time=start, end_time=end, **kw)
    return (await event_actions.create_event(make_request(intent))).data


class TestCreateEvent:
    @pytest.mark.asyncio
    async def test_create(self, make_request, stores, account):
        event = await _create(make_request, end="2026-06-01 11:30", location="12 Main St")
        assert event.start_time == datetime(2026, 6, 1, 10, 0)
        assert event.end_time == datetime(2026, 6, 1, 11, 30)
        assert stores.events.get(account.id, event.id).location == "12 Main St"

    @pytest.mark.asyncio
    async def test_relative_start(self, make_request, now):
        event = await _create(make_request, start="tomorrow")
        assert event.start_time == now + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, make_request):
        with pytest.raises(InvariantViolation, match="End time must be after start time"):
            await _create(make_request, end="2026-06-01 09:00")

    @pytest.mark.asyncio
    async def test_end_equal_start_rejected(self, make_request):
        with pytest.raises(InvariantViolation):
            await _create(make_request, end="2026-06-01 10:00")

    @pytest.mark.asyncio
    async def test_invalid_start_rejected_not_defaulted(self, make_request):
        with pytest.raises(InvariantViolation, match="Invalid start time format"):
            await _create(make_request, start="banana split")

    @pytest.mark.asyncio
    async def test_invalid_end_rejected(self, make_request):
        with pytest.raises(InvariantViolation, match="Invalid end time format"):
            await _create(make_request, end="banana split")


class TestUpdateEvent:
    @pytest.mark.asyncio
    async def test_moving_start_keeps_duration(self, make_request):
        event = await _create(make_request, end="2026-06-01 11:00")
        updated = (await event_actions.update_event(
            make_request(UpdateEvent(event_id=event.id, start_time="2026-06-02 14:00")))).data
        assert updated.start_time == datetime(2026, 6, 2, 14, 0)
        assert updated.end_time == datetime(2026, 6, 2, 15, 0)

    @pytest.mark.asyncio
    async def test_end_before_start_rejected(self, make_request, stores, account):
        event = await _create(make_request, end="2026-06-01 11:00")
        with pytest.raises(InvariantViolation):
            await event_actions.update_event(
                make_request(UpdateEvent(event_id=event.id, end_time="2026-06-01 08:00")))
        assert stores.events.get(account.id, event.id).end_time == datetime(2026, 6, 1, 11, 0)

    @pytest.mark.asyncio
    async def test_resolved_by_partial_title(self, make_request):
        event = await _create(make_request, title="Site visit with Dana")
        updated = (await event_actions.update_event(
            make_request(UpdateEvent(event_id="visit with dana", location="Warehouse")))).data
        assert updated.id == event.id
        assert updated.location == "Warehouse"


class TestCancelAndDelete:
    @pytest.mark.asyncio
    async def test_cancel_keeps_record(self, make_request, stores, account):
        event = await _create(make_request)
        await event_actions.cancel_event(make_request(CancelEvent(event_id=event.id)))
        assert stores.events.get(account.id, event.id).cancelled is True

    @pytest.mark.asyncio
    async def test_delete_removes_record(self, make_request, stores, account):
        event = await _create(make_request)
        envelope = await event_actions.delete_event(make_request(DeleteEvent(event_id=event.id)))
        assert envelope.data.title == "Site visit"
        assert stores.events.get(account.id, event.id) is None

    @pytest.mark.asyncio
    async def test_missing_event(self, make_request):
        with pytest.raises(NotFoundError, match="Event not found or no permission"):
            await event_actions.cancel_event(make_request(CancelEvent(event_id="nothing here")))


class TestFetchEvents:
    @pytest.mark.asyncio
    async def test_default_sort_excludes_cancelled(self, make_request):
        await _create(make_request, "Later", "2026-06-03 09:00")
        await _create(make_request, "Sooner", "2026-06-01 09:00", location="Depot")
        gone = await _create(make_request, "Gone", "2026-06-02 09:00")
        await event_actions.cancel_event(make_request(CancelEvent(event_id=gone.id)))

        envelope = await event_actions.fetch_events(make_request(FetchEvents()))
        assert [e.title for e in envelope.data] == ["Sooner", "Later"]

        envelope = await event_actions.fetch_events(make_request(FetchEvents(include_cancelled=True)))
        assert len(envelope.data) == 3

    @pytest.mark.asyncio
    async def test_date_range_and_location(self, make_request):
        await _create(make_request, "In range", "2026-06-02 09:00", location="Depot")
        await _create(make_request, "Out of range", "2026-06-10 09:00", location="Depot")
        envelope = await event_actions.fetch_events(make_request(
            FetchEvents(start_date="2026-06-01", end_date="2026-06-05", location="depot")))
        assert [e.title for e in envelope.data] == ["In range"]
        assert envelope.meta["total"] == 1

    @pytest.mark.asyncio
    async def test_bare_end_date_covers_whole_day(self, make_request):
        await _create(make_request, "Evening", "2026-06-05 19:00")
        envelope = await event_actions.fetch_events(make_request(
            FetchEvents(start_date="2026-06-05", end_date="2026-06-05")))
        assert [e.title for e in envelope.data] == ["Evening"]
