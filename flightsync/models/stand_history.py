"""
StandHistory model - append-only audit trail of stand reassignments.

A row is written only by the change detector, inside the same transaction
as the flight upsert that triggered it. Rows are never updated or deleted
by normal operation.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from flightsync.models.base import Base


class StandHistory(Base):
    """
    One observed stand assignment for a flight.

    Many rows per flight. flight_key is deliberately not a foreign key:
    history must survive independently of the flights table.
    """

    __tablename__ = 'stand_history'

    # Using Integer for SQLite compatibility (autoincrement only works with INTEGER)
    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment='Surrogate key'
    )

    flight_key: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
        comment='Provider flight key'
    )

    stand_position: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment='Newly assigned stand'
    )

    previous_stand_position: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Stand persisted before this assignment'
    )

    assigned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        comment='Wall-clock time the change was detected'
    )

    source_mod_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment='Provider ModTime of the triggering record'
    )

    notes: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment='Transition description'
    )

    __table_args__ = (
        Index('ix_stand_history_key_time', 'flight_key', 'assigned_at'),
    )

    def __repr__(self) -> str:
        return f'<StandHistory {self.flight_key} -> {self.stand_position} @ {self.assigned_at}>'

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'flight_key': self.flight_key,
            'stand_position': self.stand_position,
            'previous_stand_position': self.previous_stand_position,
            'assigned_at': self.assigned_at.isoformat() if self.assigned_at else None,
            'source_mod_time': self.source_mod_time.isoformat() if self.source_mod_time else None,
            'notes': self.notes,
        }
