# slotsync/models/provider.py
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from slotsync.models.base import Base


class Provider(Base):
    """Service professional whose calendar and availability are managed"""
    __tablename__ = "providers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    calendar_integration = relationship(
        "CalendarIntegration",
        back_populates="provider",
        uselist=False,
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Provider {self.name}>"
