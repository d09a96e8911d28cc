import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class TimedWorkMixin:
    """Columns shared by every row that staff can run a work timer on (garments and tasks)."""

    stage: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|working|done|ready|delivered
    is_active: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    assignee: Mapped[Optional[str]] = mapped_column(String(100), index=True)  # Staff.code of the session holder
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), index=True)
    stopped_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    actual_minutes: Mapped[float] = mapped_column(Float, default=0.0)  # Accumulated minutes across sessions


class Staff(Base):
    __tablename__ = "staff"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="staff")  # staff|operator
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Service(Base):
    """Catalog entry for an alteration service (hem, take in, zipper...)"""
    __tablename__ = "services"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[Optional[str]] = mapped_column(String(50), unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    estimated_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = uuid_pk()
    order_number: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    client_name: Mapped[Optional[str]] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending|working|done|ready|delivered|archived
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    garments = relationship(
        "Garment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="[Garment.created_at, Garment.id]",
    )


class Garment(TimedWorkMixin, Base):
    """A garment on an order; also the per-garment timed unit of work."""
    __tablename__ = "garments"

    id: Mapped[uuid.UUID] = uuid_pk()
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[Optional[str]] = mapped_column(String(100))
    label_code: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    order = relationship("Order", back_populates="garments")
    services = relationship("GarmentService", back_populates="garment", cascade="all, delete-orphan")
    tasks = relationship("Task", back_populates="garment", cascade="all, delete-orphan")

    __mapper_args__ = {"version_id_col": version}


class GarmentService(Base):
    __tablename__ = "garment_services"

    id: Mapped[uuid.UUID] = uuid_pk()
    garment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("garments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("services.id", ondelete="SET NULL"), index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    garment = relationship("Garment", back_populates="services")
    service = relationship("Service")


class Task(TimedWorkMixin, Base):
    """Planned/actual work for one (garment, service) pair."""
    __tablename__ = "tasks"

    id: Mapped[uuid.UUID] = uuid_pk()
    garment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("garments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("services.id", ondelete="SET NULL"), index=True
    )  # NULL = general work
    operation: Mapped[str] = mapped_column(String(255), nullable=False)
    planned_minutes: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    garment = relationship("Garment", back_populates="tasks")
    service = relationship("Service")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("garment_id", "service_id", name="uq_task_garment_service"),
    )


class EventLog(Base):
    """Append-only audit trail for timer and task actions"""
    __tablename__ = "event_log"

    id: Mapped[uuid.UUID] = uuid_pk()
    actor: Mapped[str] = mapped_column(String(100), nullable=False)  # staff code, cron-stale-timers, system
    entity: Mapped[str] = mapped_column(String(50), nullable=False)  # garment|task|order
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    details: Mapped[Optional[dict]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_event_log_entity', 'entity', 'entity_id'),
    )
