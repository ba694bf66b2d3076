# slotsync/services/sync/sync_state_store.py
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from slotsync.models import Provider, SyncState


class SyncStateStore:
    """Per-provider channel identity and sync cursor, upserted by provider id"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_provider(self, provider_id: UUID) -> Optional[SyncState]:
        return self.db.query(SyncState).filter_by(provider_id=provider_id).first()

    def get_by_channel(self, channel_id: str) -> Optional[SyncState]:
        return self.db.query(SyncState).filter_by(channel_id=channel_id).first()

    def upsert(
            self,
            provider_id: UUID,
            channel_id: str,
            resource_id: str,
            sync_token: Optional[str],
            expiration: datetime,
            last_sync_time: datetime
    ) -> SyncState:
        state = self.get_by_provider(provider_id)
        if state is None:
            state = SyncState(provider_id=provider_id)
            self.db.add(state)

        state.channel_id = channel_id
        state.resource_id = resource_id
        state.sync_token = sync_token
        state.expiration = expiration
        state.last_sync_time = last_sync_time
        self.db.commit()
        self.db.refresh(state)
        return state

    def record_sync(self, state: SyncState, sync_token: Optional[str], synced_at: datetime) -> SyncState:
        # Keep the previous cursor if the provider did not hand out a new one
        if sync_token:
            state.sync_token = sync_token
        state.last_sync_time = synced_at
        self.db.commit()
        return state

    def delete(self, provider_id: UUID) -> bool:
        state = self.get_by_provider(provider_id)
        if state is None:
            return False
        self.db.delete(state)
        self.db.commit()
        return True

    def list_expiring(self, before: datetime) -> List[SyncState]:
        return self.db.query(SyncState).filter(
            SyncState.expiration <= before
        ).order_by(SyncState.expiration).all()

    def list_with_providers(self) -> List[Tuple[SyncState, Provider]]:
        """Every channel with its owner, soonest expiration first"""
        return self.db.query(SyncState, Provider).join(
            Provider, Provider.id == SyncState.provider_id
        ).order_by(SyncState.expiration).all()
