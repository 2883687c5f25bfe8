"""
DAA operational flight-data API client.

Handles communication with the provider's REST API:
- Header authentication (app_id / app_key)
- Full snapshot and update (delta) feeds for a carrier list
- Bounded timeouts per feed
- Mapping transport and HTTP failures onto the upstream error types

The client never retries; the sync pipeline decides when to try again.
"""

import json
import logging
import time
from typing import Callable, Optional

import requests

from flightsync.config import DAAConfig
from flightsync.errors import UpstreamDecodeError, UpstreamError, UpstreamTimeout
from flightsync.ingestion.records import DELTA, SNAPSHOT, FlightBatch, parse_batch

logger = logging.getLogger(__name__)

# Error bodies are logged and attached to exceptions, keep them short
_MAX_ERROR_BODY = 500
_CHUNK_SIZE = 64 * 1024


class DAAClient:
    """
    Client for the DAA operational flight-data API.

    Handles:
    - GET /carrier/{carriers} for the full snapshot
    - GET /updates/carrier/{carriers} for the update feed
    - Credential probing at startup
    """

    def __init__(
        self,
        app_id: str,
        app_key: str,
        base_url: str = 'https://api.daa.ie/dub/aops/flightdata/operational/v1',
        carriers: str = 'EI,BA,IB,VY,I2,AA,T2',
        snapshot_timeout: float = 30.0,
        delta_timeout: float = 15.0,
        probe_timeout: float = 8.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.base_url = base_url.rstrip('/')
        self.carriers = carriers
        self.timeouts = {
            SNAPSHOT: snapshot_timeout,
            DELTA: delta_timeout,
        }
        self.probe_timeout = probe_timeout
        self._clock = clock

        self.session = session or requests.Session()
        self.session.headers.update({
            'app_id': app_id,
            'app_key': app_key,
            'Accept': 'application/json',
        })

    @classmethod
    def from_config(cls, daa: DAAConfig) -> 'DAAClient':
        """Create client from application configuration."""
        daa.require_credentials()
        return cls(
            app_id=daa.app_id,
            app_key=daa.app_key,
            base_url=daa.base_url,
            carriers=daa.carriers,
            snapshot_timeout=daa.snapshot_timeout,
            delta_timeout=daa.delta_timeout,
            probe_timeout=daa.probe_timeout,
        )

    def _url_for(self, kind: str) -> str:
        if kind == SNAPSHOT:
            return f'{self.base_url}/carrier/{self.carriers}'
        if kind == DELTA:
            return f'{self.base_url}/updates/carrier/{self.carriers}'
        raise ValueError(f'Unknown feed kind: {kind}')

    def _read_body(self, response: requests.Response, url: str, timeout: float, deadline: float) -> bytes:
        """
        Read a streamed body, giving up once the overall deadline passes.

        The requests timeout only bounds each socket wait, so a provider
        that trickles bytes is cut off here instead.
        """
        chunks = []
        try:
            for chunk in response.iter_content(chunk_size=_CHUNK_SIZE):
                chunks.append(chunk)
                if self._clock() > deadline:
                    logger.error(f'DAA API response not complete after {timeout}s: {url}')
                    raise UpstreamTimeout(f'Response from {url} not complete within {timeout}s')
        except requests.exceptions.RequestException as e:
            logger.error(f'DAA API connection dropped while reading {url}: {e}')
            raise UpstreamTimeout(f'Response from {url} interrupted: {e}') from e
        return b''.join(chunks)

    def _get_json(self, url: str, timeout: float):
        """
        Issue one authenticated GET and decode the JSON body.

        timeout bounds each socket wait, and the body read as a whole is
        abandoned once timeout has passed since the request started.

        Raises:
            UpstreamTimeout: no complete response within the timeout, or no connection
            UpstreamError: non-2xx response
            UpstreamDecodeError: body is not JSON
        """
        logger.debug(f'Fetching {url} (timeout={timeout}s)')
        deadline = self._clock() + timeout

        try:
            response = self.session.get(url, timeout=timeout, stream=True)
        except requests.exceptions.Timeout as e:
            logger.error(f'DAA API timeout after {timeout}s: {url}')
            raise UpstreamTimeout(f'No response from {url} within {timeout}s') from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f'DAA API unreachable: {e}')
            raise UpstreamTimeout(f'No response from {url}: {e}') from e
        except requests.exceptions.RequestException as e:
            logger.error(f'DAA request failed: {e}')
            raise UpstreamTimeout(f'Request to {url} failed: {e}') from e

        try:
            content = self._read_body(response, url, timeout, deadline)
        finally:
            response.close()

        if not response.ok:
            body = content.decode(response.encoding or 'utf-8', errors='replace')[:_MAX_ERROR_BODY]
            if response.status_code in (401, 403):
                logger.error(f'DAA API rejected credentials: {response.status_code}')
            else:
                logger.error(f'DAA API error: {response.status_code} {body}')
            raise UpstreamError(response.status_code, body)

        try:
            return json.loads(content)
        except ValueError as e:
            logger.error(f'DAA API returned a non-JSON body from {url}')
            raise UpstreamDecodeError(f'Invalid JSON from {url}') from e

    def fetch(self, kind: str) -> FlightBatch:
        """Fetch and decode one feed."""
        url = self._url_for(kind)
        payload = self._get_json(url, self.timeouts[kind])
        batch = parse_batch(kind, payload)

        logger.info(f'Received {len(batch)} {kind} records from DAA')
        return batch

    def fetch_snapshot(self) -> FlightBatch:
        """Fetch the full snapshot for the configured carriers."""
        return self.fetch(SNAPSHOT)

    def fetch_delta(self) -> FlightBatch:
        """Fetch the update feed for the configured carriers."""
        return self.fetch(DELTA)

    def check_credentials(self) -> bool:
        """
        Probe the API once with a short timeout.

        Returns True if the provider accepts the configured keys. Used for
        a startup log line only; a False result does not stop the service.
        """
        first_carrier = self.carriers.split(',')[0].strip()
        url = f'{self.base_url}/carrier/{first_carrier}'
        try:
            response = self.session.get(url, timeout=self.probe_timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f'Credential probe failed: {e}')
            return False

        logger.info(f'Credential probe status: {response.status_code}')
        return response.status_code == 200
