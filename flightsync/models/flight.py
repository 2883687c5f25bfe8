"""
Flight model - latest known state of each operational flight leg.

This table holds one row per provider flight key. It is written by the
reconciler on every sync pass and read by the API layer.

Design notes:
- One row per flight key (upsert pattern, last write wins)
- Rows are never deleted by the sync engine
- raw_payload keeps the provider's record verbatim for audit/replay
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Date, DateTime, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from flightsync.models.base import Base

# Columns that the reconciler overwrites on every pass
TIMESTAMP_COLUMNS = (
    'scheduled_at',
    'estimated_at',
    'actual_on_blocks_at',
    'actual_off_blocks_at',
    'target_startup_request_at',
    'actual_startup_request_at',
    'target_startup_approval_at',
    'actual_startup_approval_at',
    'estimated_off_block_at',
    'calculated_take_off_at',
    'wheels_down_at',
    'first_bag_at',
    'last_bag_at',
)


class Flight(Base):
    """
    Current state of a flight leg at the airport.

    Keyed by the provider's FlightKey, which is stable for the life of the
    flight. Fields mirror the provider's record, flattened.
    """

    __tablename__ = 'flights'

    flight_key: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        comment='Provider flight key'
    )

    # Identification
    flight_identity: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        index=True,
        comment='Flight number (e.g., EI123)'
    )

    carrier_code: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
        comment='IATA carrier code'
    )

    flight_direction: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment='Arrival or departure'
    )

    scheduled_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        index=True,
        comment='Scheduled operating date (UTC)'
    )

    # Operational times
    scheduled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_on_blocks_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_off_blocks_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    target_startup_request_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_startup_request_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    target_startup_approval_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    actual_startup_approval_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_off_block_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    calculated_take_off_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    wheels_down_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    first_bag_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_bag_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Aircraft
    aircraft_registration: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Aircraft registration (tail number)'
    )

    aircraft_type: Mapped[Optional[str]] = mapped_column(
        String(8),
        nullable=True,
        comment='Aircraft type code'
    )

    # Resources - reassigned over the life of the flight
    stand_position: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Assigned stand'
    )

    gate_number: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Assigned gate'
    )

    baggage_carousel_id: Mapped[Optional[str]] = mapped_column(
        String(16),
        nullable=True,
        comment='Baggage reclaim carousel'
    )

    # Load
    total_passengers: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment='Total passenger count'
    )

    # Status and route
    status_code: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    origin_airport_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    origin_airport_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    destination_airport_code: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    destination_airport_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    code_share_status: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    ramp_handling_agent: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    baggage_handling_agent: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    # Provider bookkeeping
    mod_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        comment='Provider last-modified marker'
    )

    raw_payload: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=True,
        comment='Original provider record'
    )

    # Record timestamps
    first_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        comment='First sighting of this flight key'
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        index=True,
        comment='Last reconciliation timestamp'
    )

    __table_args__ = (
        Index('ix_flights_date_direction', 'scheduled_date', 'flight_direction'),
    )

    def __repr__(self) -> str:
        return f'<Flight {self.flight_key} {self.flight_identity or "?"} stand={self.stand_position or "-"}>'

    def to_dict(self) -> dict:
        """Convert to JSON-serializable dict for API responses."""
        return {
            'flight_key': self.flight_key,
            'flight_identity': self.flight_identity,
            'carrier_code': self.carrier_code,
            'flight_direction': self.flight_direction,
            'scheduled_date': self.scheduled_date.isoformat() if self.scheduled_date else None,
            'times': {
                name: _iso(getattr(self, name)) for name in TIMESTAMP_COLUMNS
            },
            'aircraft': {
                'registration': self.aircraft_registration,
                'type': self.aircraft_type,
            },
            'resources': {
                'stand_position': self.stand_position,
                'gate_number': self.gate_number,
                'baggage_carousel_id': self.baggage_carousel_id,
            },
            'load': {
                'total_passengers': self.total_passengers,
            },
            'status_code': self.status_code,
            'origin': {
                'code': self.origin_airport_code,
                'name': self.origin_airport_name,
            },
            'destination': {
                'code': self.destination_airport_code,
                'name': self.destination_airport_name,
            },
            'code_share_status': self.code_share_status,
            'handling_agents': {
                'ramp': self.ramp_handling_agent,
                'baggage': self.baggage_handling_agent,
            },
            'mod_time': _iso(self.mod_time),
            'updated_at': _iso(self.updated_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
