"""
Provider record schema and flattening.

The DAA operational API returns each flight as a nested JSON object:

    {
      "ModTime": "2026-10-19T09:14:03Z",
      "Identification": {"FlightKey": ..., "FlightIdentity": ..., ...},
      "OperationalTimes": {"ScheduledDateTime": ..., ...},
      "FlightData": {"StandPosition": ..., "Aircraft": {...}, ...},
      "Load": {"TotalPassengerCount": ...}
    }

Every field is optional. flatten_record() turns one such object into a
flat FlightRecord; it is a pure function with no I/O so it can be tested
on its own and reused for replaying stored raw payloads.
"""

import logging
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from flightsync.errors import UpstreamDecodeError

logger = logging.getLogger(__name__)

SNAPSHOT = 'snapshot'
DELTA = 'delta'
BATCH_KINDS = (SNAPSHOT, DELTA)

# Keys that may hold the record list when the payload is an object
_LIST_KEYS = ('FlightRecords', 'flightRecords', 'Flights', 'flights', 'Updates', 'updates', 'data')

Path = Tuple[str, ...]

# Flat field -> candidate nested paths, first non-empty wins
FIELD_PATHS: Dict[str, Tuple[Path, ...]] = {
    'flight_key': (('Identification', 'FlightKey'), ('FlightKey',)),
    'flight_identity': (('Identification', 'FlightIdentity'),),
    'carrier_code': (('Identification', 'CarrierCode'), ('Identification', 'IATACarrierCode')),
    'flight_direction': (('Identification', 'FlightDirection'),),
    'scheduled_date': (('Identification', 'ScheduledDate'),),

    'scheduled_at': (('OperationalTimes', 'ScheduledDateTime'),),
    'estimated_at': (('OperationalTimes', 'EstimatedDateTime'),),
    'actual_on_blocks_at': (('OperationalTimes', 'ActualOnBlocksDateTime'),),
    'actual_off_blocks_at': (('OperationalTimes', 'ActualOffBlocksDateTime'),),
    'target_startup_request_at': (('OperationalTimes', 'TargetStartupRequestDateTime'),),
    'actual_startup_request_at': (('OperationalTimes', 'ActualStartupRequestDateTime'),),
    'target_startup_approval_at': (('OperationalTimes', 'TargetStartupApprovalDateTime'),),
    'actual_startup_approval_at': (('OperationalTimes', 'ActualStartupApprovalDateTime'),),
    'estimated_off_block_at': (('OperationalTimes', 'EstimatedOffBlockDateTime'),),
    'calculated_take_off_at': (('OperationalTimes', 'CalculatedTakeOffDateTime'),),
    'wheels_down_at': (('OperationalTimes', 'WheelsDownDateTime'),),
    'first_bag_at': (('OperationalTimes', 'FirstBagDateTime'),),
    'last_bag_at': (('OperationalTimes', 'LastBagDateTime'),),

    'aircraft_registration': (('FlightData', 'Aircraft', 'Registration'),),
    'aircraft_type': (('FlightData', 'Aircraft', 'AircraftTypeCode'),),

    'stand_position': (('FlightData', 'StandPosition'),),
    'gate_number': (('FlightData', 'GateNumber'),),
    'baggage_carousel_id': (('FlightData', 'BaggageReclaimCarouselID'),),

    'status_code': (('FlightData', 'FlightStatusCode'),),
    'origin_airport_code': (('FlightData', 'OriginAirport', 'IATACode'),),
    'origin_airport_name': (('FlightData', 'OriginAirport', 'Name'),),
    'destination_airport_code': (('FlightData', 'DestinationAirport', 'IATACode'),),
    'destination_airport_name': (('FlightData', 'DestinationAirport', 'Name'),),
    'code_share_status': (('FlightData', 'CodeShareStatus'),),
    'ramp_handling_agent': (('FlightData', 'RampHandlingAgentCode'),),
    'baggage_handling_agent': (('FlightData', 'BaggageHandlingAgentCode'),),

    'total_passengers': (('Load', 'TotalPassengerCount'),),

    'mod_time': (('ModTime',), ('Identification', 'ModTime')),
}

TIMESTAMP_FIELDS = (
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
    'mod_time',
)


@dataclass
class FlightRecord:
    """
    One flight leg, flattened from the provider's nested shape.

    All values may be None if the provider did not report them.
    """
    flight_key: str
    flight_identity: Optional[str] = None
    carrier_code: Optional[str] = None
    flight_direction: Optional[str] = None
    scheduled_date: Optional[date] = None

    # Operational times (UTC, not ordered relative to each other)
    scheduled_at: Optional[datetime] = None
    estimated_at: Optional[datetime] = None
    actual_on_blocks_at: Optional[datetime] = None
    actual_off_blocks_at: Optional[datetime] = None
    target_startup_request_at: Optional[datetime] = None
    actual_startup_request_at: Optional[datetime] = None
    target_startup_approval_at: Optional[datetime] = None
    actual_startup_approval_at: Optional[datetime] = None
    estimated_off_block_at: Optional[datetime] = None
    calculated_take_off_at: Optional[datetime] = None
    wheels_down_at: Optional[datetime] = None
    first_bag_at: Optional[datetime] = None
    last_bag_at: Optional[datetime] = None

    aircraft_registration: Optional[str] = None
    aircraft_type: Optional[str] = None

    stand_position: Optional[str] = None
    gate_number: Optional[str] = None
    baggage_carousel_id: Optional[str] = None

    total_passengers: Optional[int] = None

    status_code: Optional[str] = None
    origin_airport_code: Optional[str] = None
    origin_airport_name: Optional[str] = None
    destination_airport_code: Optional[str] = None
    destination_airport_name: Optional[str] = None
    code_share_status: Optional[str] = None
    ramp_handling_agent: Optional[str] = None
    baggage_handling_agent: Optional[str] = None

    mod_time: Optional[datetime] = None
    raw_payload: Dict[str, Any] = field(default_factory=dict, repr=False)

    def column_values(self) -> Dict[str, Any]:
        """All fields as a dict keyed by column name."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class FlightBatch:
    """A decoded provider response: the raw payload plus flattened records."""
    kind: str
    records: List[FlightRecord]
    payload: Any
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    skipped: int = 0

    def __len__(self) -> int:
        return len(self.records)

    @property
    def flight_keys(self) -> List[str]:
        return [r.flight_key for r in self.records]


# -------------------------------------------------------------------------
# Value parsing helpers
# -------------------------------------------------------------------------

def _dig(raw: Dict[str, Any], path: Path) -> Any:
    node: Any = raw
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
        if node is None:
            return None
    return node


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _verbatim_str(value: Any) -> Optional[str]:
    """Blank values become None, anything else is kept exactly as sent."""
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp into a UTC datetime.

    Naive values are taken to be UTC. Returns None for empty or
    unparseable input.
    """
    text = _clean_str(value)
    if text is None:
        return None
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f'Unparseable timestamp: {value!r}')
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date(value: Any) -> Optional[date]:
    """Parse the date part of an ISO-8601 date or timestamp."""
    text = _clean_str(value)
    if text is None:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug(f'Unparseable date: {value!r}')
        return None


def parse_int(value: Any) -> Optional[int]:
    if value is None or value == '':
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.debug(f'Unparseable integer: {value!r}')
        return None


def _lookup(raw: Dict[str, Any], name: str) -> Any:
    for path in FIELD_PATHS[name]:
        value = _dig(raw, path)
        if value is not None and value != '':
            return value
    return None


def flatten_record(raw: Any) -> Optional[FlightRecord]:
    """
    Flatten one provider flight object into a FlightRecord.

    Returns None if the object is not a dict or has no flight key.
    """
    if not isinstance(raw, dict):
        return None

    flight_key = _clean_str(_lookup(raw, 'flight_key'))
    if flight_key is None:
        return None

    values: Dict[str, Any] = {}
    for name in FIELD_PATHS:
        if name == 'flight_key':
            continue
        value = _lookup(raw, name)
        if name in TIMESTAMP_FIELDS:
            values[name] = parse_timestamp(value)
        elif name == 'scheduled_date':
            values[name] = parse_date(value)
        elif name == 'total_passengers':
            values[name] = parse_int(value)
        elif name == 'stand_position':
            values[name] = _verbatim_str(value)
        else:
            values[name] = _clean_str(value)

    return FlightRecord(flight_key=flight_key, raw_payload=raw, **values)


def extract_record_list(payload: Any) -> List[Any]:
    """Find the list of flight objects in a decoded response body."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        for key in _LIST_KEYS:
            value = payload.get(key)
            if isinstance(value, list):
                return value
    raise UpstreamDecodeError(
        f'Expected a list of flight records, got {type(payload).__name__}'
    )


def parse_batch(kind: str, payload: Any) -> FlightBatch:
    """
    Build a FlightBatch from a decoded provider response.

    Records without a flight key are dropped and counted in `skipped`.
    """
    raw_records = extract_record_list(payload)

    records = []
    for raw in raw_records:
        record = flatten_record(raw)
        if record is None:
            continue
        records.append(record)

    skipped = len(raw_records) - len(records)
    if skipped:
        logger.warning(f'Skipped {skipped} {kind} record(s) without a flight key')

    return FlightBatch(kind=kind, records=records, payload=payload, skipped=skipped)
