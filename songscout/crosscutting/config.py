import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from dotenv import dotenv_values


DEFAULT_PORT = 3001
DEFAULT_HOST = '127.0.0.1'
DEFAULT_MARKET = 'US'
DEFAULT_UPSTREAM_TIMEOUT = 10.0
RECOMMEND_STRATEGIES = ('top-tracks', 'seed-discovery')


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class Settings:
    """Runtime configuration of the SongScout service."""

    client_id: str
    client_secret: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    market: str = DEFAULT_MARKET
    upstream_timeout: float = DEFAULT_UPSTREAM_TIMEOUT
    recommend_strategy: str = 'top-tracks'
    log_level: str = 'INFO'

    def summary(self) -> Dict[str, Any]:
        """Get configuration summary (without sensitive data)."""
        return {
            'client_id': self.client_id[:4] + '...' if self.client_id else None,
            'has_client_secret': bool(self.client_secret),
            'host': self.host,
            'port': self.port,
            'market': self.market,
            'upstream_timeout': self.upstream_timeout,
            'recommend_strategy': self.recommend_strategy,
            'log_level': self.log_level,
        }


def _merged_env(env: Optional[Mapping[str, str]], env_file: Optional[str]) -> Dict[str, str]:
    """Process environment wins over values read from the .env file."""
    merged: Dict[str, str] = {}
    if env_file is None:
        env_file = '.env'
    if env_file and os.path.exists(env_file):
        merged.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    merged.update(os.environ if env is None else env)
    return merged


def _parse_int(values: Mapping[str, str], key: str, default: int) -> int:
    raw = (values.get(key) or '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}")


def _parse_float(values: Mapping[str, str], key: str, default: float) -> float:
    raw = (values.get(key) or '').strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


def load_settings(env: Optional[Mapping[str, str]] = None,
                  env_file: Optional[str] = None) -> Settings:
    """Build Settings from the environment, refusing to proceed without catalog credentials.

    Args:
        env: Mapping to read instead of ``os.environ`` (used by tests)
        env_file: Path of a .env file to merge underneath; ``''`` disables it

    Raises:
        ConfigError: If credentials are missing or a value is malformed
    """
    values = _merged_env(env, env_file)

    client_id = (values.get('SPOTIFY_CLIENT_ID') or '').strip()
    client_secret = (values.get('SPOTIFY_CLIENT_SECRET') or '').strip()
    if not client_id:
        raise ConfigError("SPOTIFY_CLIENT_ID not found in environment")
    if not client_secret:
        raise ConfigError("SPOTIFY_CLIENT_SECRET not found in environment")

    strategy = (values.get('RECOMMEND_STRATEGY') or 'top-tracks').strip().lower()
    if strategy not in RECOMMEND_STRATEGIES:
        raise ConfigError(
            f"RECOMMEND_STRATEGY must be one of {', '.join(RECOMMEND_STRATEGIES)}, got {strategy!r}"
        )

    port = _parse_int(values, 'PORT', DEFAULT_PORT)
    if not 0 < port < 65536:
        raise ConfigError(f"PORT out of range: {port}")

    return Settings(
        client_id=client_id,
        client_secret=client_secret,
        host=(values.get('HOST') or DEFAULT_HOST).strip(),
        port=port,
        market=(values.get('SPOTIFY_MARKET') or DEFAULT_MARKET).strip().upper(),
        upstream_timeout=_parse_float(values, 'UPSTREAM_TIMEOUT', DEFAULT_UPSTREAM_TIMEOUT),
        recommend_strategy=strategy,
        log_level=(values.get('LOG_LEVEL') or 'INFO').strip().upper(),
    )
