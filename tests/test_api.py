"""
Tests for the Flask application and read endpoints.
"""

import pytest

from conftest import raw_flight
from flightsync.app import create_app
from flightsync.config import AppConfig, DAAConfig, DatabaseConfig, SyncConfig
from flightsync.errors import ConfigurationError, UpstreamTimeout
from flightsync.ingestion.records import DELTA, SNAPSHOT


@pytest.fixture
def app_config(tmp_path):
    return AppConfig(
        daa=DAAConfig(app_id='id', app_key='key'),
        database=DatabaseConfig(url=f'sqlite:///{tmp_path / "api.db"}'),
        sync=SyncConfig(interval_seconds=300, verify_credentials_on_start=False),
    )


@pytest.fixture
def app(app_config, fake_client):
    return create_app(app_config, client=fake_client, start_sync=False)


@pytest.fixture
def http(app):
    return app.test_client()


def test_missing_credentials_is_fatal(tmp_path):
    config = AppConfig(
        daa=DAAConfig(app_id=None, app_key=None),
        database=DatabaseConfig(url=f'sqlite:///{tmp_path / "x.db"}'),
    )
    with pytest.raises(ConfigurationError):
        create_app(config, start_sync=False)


def test_snapshot_returns_provider_payload(http, fake_client):
    payload = [raw_flight('K1', '14')]
    fake_client.push(SNAPSHOT, payload)

    response = http.get('/api/flights/snapshot')

    assert response.status_code == 200
    body = response.get_json()
    assert body['kind'] == SNAPSHOT
    assert body['record_count'] == 1
    assert body['data'] == payload


def test_snapshot_is_503_when_never_fetched(http, fake_client):
    fake_client.push(SNAPSHOT, UpstreamTimeout('no response'))

    response = http.get('/api/flights/snapshot')

    assert response.status_code == 503
    assert response.get_json()['error'] == 'not yet available'


def test_empty_delta_is_200(http, fake_client):
    fake_client.push(DELTA, [])

    response = http.get('/api/flights/delta')

    assert response.status_code == 200
    assert response.get_json()['record_count'] == 0


def test_second_read_is_served_from_cache(http, fake_client):
    http.get('/api/flights/snapshot')
    http.get('/api/flights/snapshot')

    assert fake_client.calls[SNAPSHOT] == 1


def test_max_staleness_param_cannot_shrink_the_cache_window(http, fake_client):
    for _ in range(20):
        response = http.get('/api/flights/snapshot?max_staleness=0')
        assert response.status_code == 200

    assert fake_client.calls[SNAPSHOT] == 1


def test_invalid_max_staleness_param_is_ignored(http, fake_client):
    http.get('/api/flights/snapshot')
    response = http.get('/api/flights/snapshot?max_staleness=soon')

    assert response.status_code == 200
    assert fake_client.calls[SNAPSHOT] == 1


def test_flight_and_stand_history_endpoints(app, http, fake_client):
    pipeline = app.config['SYNC_PIPELINE']
    fake_client.push(SNAPSHOT, [raw_flight('K1', '14')])
    fake_client.push(SNAPSHOT, [raw_flight('K1', '22')])
    pipeline.run_once()
    pipeline.run_once()

    flight = http.get('/api/flights/K1').get_json()
    assert flight['resources']['stand_position'] == '22'

    history = http.get('/api/flights/K1/stand-history').get_json()
    assert history['count'] == 2
    assert [h['notes'] for h in history['history']] == [
        'initial assignment',
        'changed from 14 to 22',
    ]


def test_unknown_flight_is_404(http):
    assert http.get('/api/flights/NOPE').status_code == 404
    assert http.get('/api/flights/NOPE/stand-history').status_code == 404


def test_status_endpoint(http):
    response = http.get('/api/status')

    assert response.status_code == 200
    body = response.get_json()
    assert body['database']['connected'] is True
    assert body['status'] == 'degraded'  # scheduler not started
    assert SNAPSHOT in body['cache']['feeds']


def test_health_and_index(http):
    assert http.get('/health').get_json() == {'status': 'ok'}
    assert '/api/flights/snapshot' in http.get('/').get_json()['endpoints']
