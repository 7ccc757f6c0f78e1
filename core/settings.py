"""
Runtime settings read from the environment.

    ANGKOR_CACHE_ENABLED          1/0, true/false (default: true)
    ANGKOR_CACHE_TTL_SECONDS      seconds, empty or "none" for no expiry (default: 60)
    ANGKOR_UNLISTED_FIELD_POLICY  allow | deny (default: allow)
    ANGKOR_AUDIT_ENABLED          1/0, true/false (default: true)
    ANGKOR_LOG_LEVEL              logging level name (default: WARNING)

The database URL is read by ``models.database`` (``ANGKOR_DATABASE_URL``).
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

UNLISTED_FIELD_POLICIES = ('allow', 'deny')

_TRUE = {'1', 'true', 'yes', 'on'}
_FALSE = {'0', 'false', 'no', 'off'}


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _parse_ttl(raw: str) -> Optional[float]:
    value = raw.strip().lower()
    if value in ('', 'none'):
        return None
    ttl = float(value)
    if ttl <= 0:
        raise ValueError(f"ANGKOR_CACHE_TTL_SECONDS must be positive, got {raw!r}")
    return ttl


@dataclass(frozen=True)
class Settings:
    cache_enabled: bool = True
    cache_ttl_seconds: Optional[float] = 60.0
    unlisted_field_policy: str = 'allow'
    audit_enabled: bool = True
    log_level: str = 'WARNING'

    def __post_init__(self):
        if self.unlisted_field_policy not in UNLISTED_FIELD_POLICIES:
            raise ValueError(
                f"unlisted_field_policy must be one of {UNLISTED_FIELD_POLICIES}, "
                f"got {self.unlisted_field_policy!r}"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            cache_enabled=_parse_bool(
                'ANGKOR_CACHE_ENABLED', env.get('ANGKOR_CACHE_ENABLED', 'true')
            ),
            cache_ttl_seconds=_parse_ttl(env['ANGKOR_CACHE_TTL_SECONDS'])
            if 'ANGKOR_CACHE_TTL_SECONDS' in env else defaults.cache_ttl_seconds,
            unlisted_field_policy=env.get(
                'ANGKOR_UNLISTED_FIELD_POLICY', defaults.unlisted_field_policy
            ).strip().lower(),
            audit_enabled=_parse_bool(
                'ANGKOR_AUDIT_ENABLED', env.get('ANGKOR_AUDIT_ENABLED', 'true')
            ),
            log_level=env.get('ANGKOR_LOG_LEVEL', defaults.log_level).strip().upper(),
        )
