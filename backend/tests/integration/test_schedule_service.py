from datetime import time, timedelta

import pytest
import ulid

from clinic_booking.core.exceptions import NotFoundException, ValidationException
from clinic_booking.models import BlockedSlot, ProviderSchedule
from clinic_booking.services.schedule_service import ScheduleService
from tests._utils.clinic_seed import MONDAY, NEXT_MONDAY, tokyo_instant


@pytest.fixture
def schedule_service(db, cache, availability_service) -> ScheduleService:
    return ScheduleService(db, cache, availability_service)


def _available(availability_service, provider_id, day=NEXT_MONDAY):
    return [
        slot.time
        for slot in availability_service.get_availability(provider_id, day).slots
        if slot.is_available
    ]


class TestUpdateProviderSchedule:
    def test_replaces_active_windows(self, schedule_service, availability_service, db, world):
        # Prime the cache so the replacement has something to invalidate
        assert len(_available(availability_service, world.provider.id)) == 6

        created = schedule_service.update_provider_schedule(
            world.provider.id,
            [
                {"day_of_week": MONDAY, "start_time": "14:00", "end_time": "15:00"},
                {"day_of_week": 3, "start_time": "09:00", "end_time": "10:00", "slot_duration_minutes": 15},
            ],
        )

        assert created == 2
        assert _available(availability_service, world.provider.id) == ["14:00", "14:30"]

        rows = db.query(ProviderSchedule).filter_by(provider_id=world.provider.id).all()
        assert len(rows) == 3
        assert sum(1 for row in rows if row.is_active) == 2

    def test_empty_list_clears_schedule(self, schedule_service, availability_service, world):
        assert schedule_service.update_provider_schedule(world.provider.id, []) == 0
        assert _available(availability_service, world.provider.id) == []

    def test_invalid_window_changes_nothing(self, schedule_service, availability_service, world):
        with pytest.raises(ValidationException) as exc_info:
            schedule_service.update_provider_schedule(
                world.provider.id,
                [{"day_of_week": MONDAY, "start_time": "12:00", "end_time": "09:00"}],
            )

        assert exc_info.value.code == "INVALID_SCHEDULE"
        assert len(_available(availability_service, world.provider.id)) == 6

    def test_unknown_provider(self, schedule_service):
        with pytest.raises(NotFoundException):
            schedule_service.update_provider_schedule(str(ulid.ULID()), [])


class TestBlockedSlots:
    def test_block_and_unblock(self, schedule_service, availability_service, db, world):
        assert "10:00" in _available(availability_service, world.provider.id)

        count = schedule_service.block_time_slots(
            world.provider.id, [NEXT_MONDAY], [time(10, 0), time(10, 30)], reason="Training"
        )

        assert count == 2
        assert _available(availability_service, world.provider.id) == ["09:00", "09:30", "11:00", "11:30"]
        blocked = db.query(BlockedSlot).order_by(BlockedSlot.blocked_at).all()
        assert [b.blocked_at for b in blocked] == [
            tokyo_instant(NEXT_MONDAY, 10),
            tokyo_instant(NEXT_MONDAY, 10, 30),
        ]

        removed = schedule_service.unblock_time_slots(world.provider.id, [NEXT_MONDAY], [time(10, 0)])

        assert removed == 1
        assert "10:00" in _available(availability_service, world.provider.id)
        assert "10:30" not in _available(availability_service, world.provider.id)

    def test_blocking_twice_updates_reason(self, schedule_service, db, world):
        schedule_service.block_time_slots(world.provider.id, [NEXT_MONDAY], [time(9, 0)], reason="Meeting")
        schedule_service.block_time_slots(world.provider.id, [NEXT_MONDAY], [time(9, 0)], reason="Surgery")

        rows = db.query(BlockedSlot).all()
        assert len(rows) == 1
        assert rows[0].reason == "Surgery"

    def test_multiple_dates(self, schedule_service, db, world):
        following = NEXT_MONDAY + timedelta(days=7)

        count = schedule_service.block_time_slots(
            world.provider.id, [NEXT_MONDAY, following], [time(9, 0)]
        )
        assert count == 2

    def test_unblocking_nothing(self, schedule_service, world):
        assert schedule_service.unblock_time_slots(world.provider.id, [NEXT_MONDAY], [time(9, 0)]) == 0

    def test_unknown_provider(self, schedule_service):
        with pytest.raises(NotFoundException):
            schedule_service.block_time_slots(str(ulid.ULID()), [NEXT_MONDAY], [time(9, 0)])
