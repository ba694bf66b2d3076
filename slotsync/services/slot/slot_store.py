# slotsync/services/slot/slot_store.py
"""Slot persistence keyed by natural keys.

Every write is an upsert on (provider, start, end) or
(provider, external event id), so retried syncs and repeated generation
runs converge instead of appending rows. Methods flush; callers commit.
"""
from datetime import datetime
from typing import List, Optional, Set, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from slotsync.models import Slot

logger = logging.getLogger(__name__)

BLOCKED_LABEL = "Blocked - External Event"


def _minutes(start: datetime, end: datetime) -> int:
    return round((end - start).total_seconds() / 60)


def _is_free_generated(slot: Slot) -> bool:
    return slot.is_available and slot.external_event_id is None


class SlotStore:
    """Reads and upserts Slot rows for the engine"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, slot_id) -> Optional[Slot]:
        return self.db.get(Slot, slot_id)

    def find_by_interval(self, provider_id: UUID, start: datetime, end: datetime) -> Optional[Slot]:
        return self.db.query(Slot).filter(
            Slot.provider_id == provider_id,
            Slot.start_time == start,
            Slot.end_time == end,
        ).first()

    def find_by_external_id(self, provider_id: UUID, external_event_id: str) -> Optional[Slot]:
        return self.db.query(Slot).filter(
            Slot.provider_id == provider_id,
            Slot.external_event_id == external_event_id,
        ).first()

    def existing_intervals(self, provider_id: UUID, start: datetime, end: datetime) -> Set[Tuple[datetime, datetime]]:
        """(start, end) pairs already stored for slots starting in [start, end)"""
        rows = self.db.query(Slot.start_time, Slot.end_time).filter(
            Slot.provider_id == provider_id,
            Slot.start_time >= start,
            Slot.start_time < end,
        ).all()
        return {(row.start_time, row.end_time) for row in rows}

    def create_available(
            self,
            provider_id: UUID,
            start: datetime,
            end: datetime,
            duration: int,
            type_name: str
    ) -> Slot:
        slot = Slot(
            provider_id=provider_id,
            start_time=start,
            end_time=end,
            duration=duration,
            type=type_name,
            is_available=True,
            external_event_id=None,
        )
        self.db.add(slot)
        return slot

    def upsert_blocking(
            self,
            provider_id: UUID,
            external_event_id: str,
            start: datetime,
            end: datetime,
            label: Optional[str]
    ) -> Tuple[Optional[Slot], bool]:
        """Block [start, end) for an external event.

        Returns (slot, created). The slot is None when the interval is held
        by a slot bound to a different event and nothing was written.
        """
        label = label or BLOCKED_LABEL
        slot = self.find_by_external_id(provider_id, external_event_id)
        created = False
        vacated = None

        if slot is None:
            slot = self.find_by_interval(provider_id, start, end)
            if slot is not None and not _is_free_generated(slot):
                logger.warning(
                    f"Interval {start.isoformat()} already held by slot {slot.id}, "
                    f"not blocking it again for {external_event_id}"
                )
                return None, False
            if slot is None:
                slot = Slot(provider_id=provider_id)
                self.db.add(slot)
                created = True
            else:
                slot.absorbed_type = slot.type
        elif (slot.start_time, slot.end_time) != (start, end):
            target = self.find_by_interval(provider_id, start, end)
            taken_type = target.type if target is not None and _is_free_generated(target) else None
            if not self._claim_interval(slot, start, end):
                return None, False
            if slot.absorbed_type:
                vacated = (slot.start_time, slot.end_time, slot.absorbed_type)
            slot.absorbed_type = taken_type

        slot.start_time = start
        slot.end_time = end
        slot.duration = _minutes(start, end)
        slot.type = label
        slot.is_available = False
        slot.external_event_id = external_event_id
        self.db.flush()

        if vacated is not None:
            # The event moved off a generated slot it had taken over
            vacated_start, vacated_end, type_name = vacated
            self.create_available(
                provider_id, vacated_start, vacated_end, _minutes(vacated_start, vacated_end), type_name
            )
            self.db.flush()
        return slot, created

    def update_appointment_slot(
            self,
            provider_id: UUID,
            external_event_id: str,
            start: datetime,
            end: datetime,
            type_name: str
    ) -> Optional[Slot]:
        """Move an appointment's slot to the event's times; never inserts"""
        slot = self.find_by_external_id(provider_id, external_event_id)
        if slot is None or not self._claim_interval(slot, start, end):
            return None

        slot.start_time = start
        slot.end_time = end
        slot.duration = _minutes(start, end)
        slot.type = type_name
        slot.is_available = False
        self.db.flush()
        return slot

    def remove_blocking(self, provider_id: UUID, external_event_id: str) -> Optional[str]:
        """Undo an external event's block.

        A generated slot the event had taken over becomes bookable again
        under its appointment type; a slot the event created is deleted.
        Returns "released", "deleted", or None when nothing was bound.
        """
        slot = self.find_by_external_id(provider_id, external_event_id)
        if slot is None:
            return None

        if slot.absorbed_type:
            slot.type = slot.absorbed_type
            slot.absorbed_type = None
            self.release(slot)
            return "released"

        self.db.delete(slot)
        self.db.flush()
        return "deleted"

    def release(self, slot: Slot) -> Slot:
        """Make a slot bookable again and unbind it from its calendar event"""
        slot.is_available = True
        slot.external_event_id = None
        self.db.flush()
        return slot

    def list_available(
            self,
            provider_id: UUID,
            start: datetime,
            end: datetime,
            type_name: Optional[str] = None,
            limit: int = 100
    ) -> List[Slot]:
        query = self.db.query(Slot).filter(
            Slot.provider_id == provider_id,
            Slot.is_available.is_(True),
            Slot.start_time >= start,
            Slot.start_time <= end,
        )
        if type_name:
            query = query.filter(Slot.type == type_name)
        return query.order_by(Slot.start_time).limit(limit).all()

    def _claim_interval(self, slot: Slot, start: datetime, end: datetime) -> bool:
        """Make sure moving ``slot`` to [start, end) keeps intervals unique.

        A free generated slot already sitting on the target interval is
        absorbed; anything else bound there blocks the move.
        """
        if slot.start_time == start and slot.end_time == end:
            return True

        other = self.find_by_interval(slot.provider_id, start, end)
        if other is None or other.id == slot.id:
            return True

        if _is_free_generated(other):
            self.db.delete(other)
            self.db.flush()
            return True

        logger.warning(
            f"Cannot move slot {slot.id} to {start.isoformat()}: interval held by slot {other.id}"
        )
        return False
