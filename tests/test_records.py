from datetime import date, datetime, timezone

import pytest

from conftest import raw_flight
from flightsync.errors import UpstreamDecodeError
from flightsync.ingestion.records import (
    DELTA,
    SNAPSHOT,
    extract_record_list,
    flatten_record,
    parse_batch,
    parse_timestamp,
)


def test_flatten_maps_nested_paths_to_flat_fields():
    raw = raw_flight(
        'DUB-EI123-20261019-A',
        stand='14',
        GateNumber='B21',
        BaggageReclaimCarouselID='4',
        FlightStatusCode='LND',
        Aircraft={'Registration': 'EI-DEO', 'AircraftTypeCode': 'A320'},
        OriginAirport={'IATACode': 'LHR', 'Name': 'London Heathrow'},
        RampHandlingAgentCode='SWP',
    )
    raw['OperationalTimes']['ActualOnBlocksDateTime'] = '2026-10-19T10:41:00Z'

    rec = flatten_record(raw)

    assert rec.flight_key == 'DUB-EI123-20261019-A'
    assert rec.flight_identity == 'EI123'
    assert rec.carrier_code == 'EI'
    assert rec.flight_direction == 'A'
    assert rec.scheduled_date == date(2026, 10, 19)
    assert rec.scheduled_at == datetime(2026, 10, 19, 10, 30, tzinfo=timezone.utc)
    assert rec.actual_on_blocks_at == datetime(2026, 10, 19, 10, 41, tzinfo=timezone.utc)
    assert rec.stand_position == '14'
    assert rec.gate_number == 'B21'
    assert rec.baggage_carousel_id == '4'
    assert rec.status_code == 'LND'
    assert rec.aircraft_registration == 'EI-DEO'
    assert rec.aircraft_type == 'A320'
    assert rec.origin_airport_code == 'LHR'
    assert rec.origin_airport_name == 'London Heathrow'
    assert rec.ramp_handling_agent == 'SWP'
    assert rec.total_passengers == 174
    assert rec.mod_time == datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)
    assert rec.raw_payload is raw


def test_flatten_treats_missing_and_blank_values_as_none():
    raw = raw_flight('K1', stand='   ', GateNumber='')
    del raw['Load']

    rec = flatten_record(raw)

    assert rec.stand_position is None
    assert rec.gate_number is None
    assert rec.total_passengers is None
    assert rec.wheels_down_at is None


def test_flatten_accepts_top_level_flight_key():
    rec = flatten_record({'FlightKey': ' K9 ', 'ModTime': '2026-10-19T08:00:00'})
    assert rec.flight_key == 'K9'
    assert rec.mod_time.tzinfo is not None


def test_flatten_rejects_records_without_key():
    assert flatten_record(raw_flight(None)) is None
    assert flatten_record(['not', 'a', 'dict']) is None


def test_unparseable_values_become_none():
    raw = raw_flight('K1')
    raw['OperationalTimes']['EstimatedDateTime'] = 'soon'
    raw['Load']['TotalPassengerCount'] = 'many'

    rec = flatten_record(raw)

    assert rec.estimated_at is None
    assert rec.total_passengers is None


def test_parse_timestamp_normalizes_offsets_to_utc():
    parsed = parse_timestamp('2026-10-19T11:00:00+01:00')
    assert parsed == datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


def test_parse_batch_accepts_list_and_wrapped_payloads():
    flights = [raw_flight('K1'), raw_flight('K2')]

    assert parse_batch(SNAPSHOT, flights).flight_keys == ['K1', 'K2']
    assert parse_batch(DELTA, {'FlightRecords': flights}).flight_keys == ['K1', 'K2']


def test_parse_batch_counts_skipped_records():
    batch = parse_batch(SNAPSHOT, [raw_flight('K1'), {'Identification': {}}])

    assert len(batch) == 1
    assert batch.skipped == 1


def test_empty_snapshot_is_valid_data():
    batch = parse_batch(SNAPSHOT, [])
    assert len(batch) == 0
    assert batch.payload == []


def test_unexpected_payload_shape_raises_decode_error():
    with pytest.raises(UpstreamDecodeError):
        extract_record_list({'message': 'maintenance'})
    with pytest.raises(UpstreamDecodeError):
        parse_batch(SNAPSHOT, 'oops')


def test_flatten_keeps_stand_exactly_as_sent():
    rec = flatten_record(raw_flight('K1', stand=' 14'))

    assert rec.stand_position == ' 14'
