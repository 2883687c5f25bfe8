"""
Configuration management for FlightSync.

Loads settings from environment variables with sensible defaults.
All configuration is centralized here to avoid magic strings scattered
throughout the codebase.

Values are read when a config object is constructed (not at import time),
so tests can build an AppConfig directly with explicit values.
"""

import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from flightsync.errors import ConfigurationError

load_dotenv()


def _env(name: str, default: str = '') -> str:
    return os.getenv(name, default)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _credential(primary: str, legacy: str) -> Optional[str]:
    """Read a credential, accepting the legacy APP_ID/APP_KEY names too."""
    return os.getenv(primary) or os.getenv(legacy) or None


@dataclass(frozen=True)
class DAAConfig:
    """DAA operational flight-data API configuration."""
    app_id: Optional[str] = field(default_factory=lambda: _credential('DAA_APP_ID', 'APP_ID'))
    app_key: Optional[str] = field(default_factory=lambda: _credential('DAA_APP_KEY', 'APP_KEY'))
    base_url: str = field(default_factory=lambda: _env(
        'DAA_BASE_URL', 'https://api.daa.ie/dub/aops/flightdata/operational/v1'))
    carriers: str = field(default_factory=lambda: _env('DAA_CARRIERS', 'EI,BA,IB,VY,I2,AA,T2'))

    # Full snapshots are much larger than the update feed
    snapshot_timeout: float = field(
        default_factory=lambda: float(_env('DAA_SNAPSHOT_TIMEOUT_SECONDS', '30')))
    delta_timeout: float = field(
        default_factory=lambda: float(_env('DAA_DELTA_TIMEOUT_SECONDS', '15')))
    probe_timeout: float = 8.0

    @property
    def is_authenticated(self) -> bool:
        return bool(self.app_id and self.app_key)

    def require_credentials(self) -> None:
        """Fail fast when the provider credentials are missing."""
        if not self.is_authenticated:
            raise ConfigurationError(
                'Missing DAA credentials: set DAA_APP_ID and DAA_APP_KEY'
            )


@dataclass(frozen=True)
class DatabaseConfig:
    """Database configuration."""
    url: str = field(default_factory=lambda: _env('DATABASE_URL', 'sqlite:///flightsync.db'))

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith('sqlite')


@dataclass(frozen=True)
class CacheConfig:
    """In-memory snapshot cache settings."""
    max_staleness_seconds: float = field(
        default_factory=lambda: float(_env('CACHE_MAX_STALENESS_SECONDS', '300')))


@dataclass(frozen=True)
class SyncConfig:
    """Refresh scheduler settings."""
    interval_seconds: float = field(
        default_factory=lambda: float(_env('SYNC_INTERVAL_SECONDS', '300')))
    reconcile_delta: bool = field(
        default_factory=lambda: _env_bool('SYNC_RECONCILE_DELTA', False))
    verify_credentials_on_start: bool = field(
        default_factory=lambda: _env_bool('VERIFY_CREDENTIALS_ON_START', True))


@dataclass(frozen=True)
class ReconcileConfig:
    """Upsert behaviour."""
    # Keep the last known stand when the provider sends an empty one
    preserve_stand_on_empty: bool = field(
        default_factory=lambda: _env_bool('RECONCILE_PRESERVE_STAND_ON_EMPTY', True))


@dataclass(frozen=True)
class AppConfig:
    """Main application configuration."""
    daa: DAAConfig = field(default_factory=DAAConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)

    debug: bool = field(default_factory=lambda: _env('FLASK_DEBUG', '0') == '1')


def load_config() -> AppConfig:
    """Load all configuration from the environment."""
    return AppConfig()
