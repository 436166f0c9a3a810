"""
One-way pseudonymisation of tenant identifiers.

Cross-tenant rows are keyed by an HMAC-SHA256 of the tenant id before they
reach any cache, so cached state never holds a reversible identity. The
same secret always maps an id to the same token within a process.
"""
import hashlib
import hmac
from typing import Iterable, Optional

from app.config import Settings
from app.services.channel_fit.errors import ConfigurationError
from app.utils.logger import log

MIN_KEY_LENGTH = 32
TOKEN_LENGTH = 16
LOG_REF_LENGTH = 8

_DEV_KEY = "channel-fit-dev-pseudonym-key-not-for-production"


class Pseudonymizer:
    def __init__(self, secret: str):
        if not secret or len(secret) < MIN_KEY_LENGTH:
            raise ConfigurationError(
                f"Pseudonym key must be at least {MIN_KEY_LENGTH} characters "
                f"(got {len(secret or '')}). Set PSEUDONYM_KEY to a random secret."
            )
        self._secret = secret.encode("utf-8")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Pseudonymizer":
        """
        Build from configuration.

        PSEUDONYM_KEY is mandatory unless ENVIRONMENT is one of the
        allow-listed non-production names, which fall back to a fixed dev key.
        """
        return cls(resolve_pseudonym_key(
            settings.pseudonym_key,
            settings.environment,
            settings.non_production_env_names,
        ))

    def pseudonymize(self, tenant_id: str) -> str:
        digest = hmac.new(self._secret, str(tenant_id).encode("utf-8"), hashlib.sha256)
        return digest.hexdigest()[:TOKEN_LENGTH]

    def log_ref(self, tenant_id: str) -> str:
        """Short token safe to print in log lines."""
        return self.pseudonymize(tenant_id)[:LOG_REF_LENGTH]


def resolve_pseudonym_key(
    key: Optional[str],
    environment: str,
    non_production_envs: Iterable[str],
) -> str:
    if key:
        if len(key) < MIN_KEY_LENGTH:
            msg = (
                f"PSEUDONYM_KEY must be at least {MIN_KEY_LENGTH} characters (got {len(key)}). "
                f"Set it to a random {MIN_KEY_LENGTH}+ character secret."
            )
            log.error(msg)
            raise ConfigurationError(msg)
        return key

    if (environment or "").strip().lower() in set(non_production_envs):
        return _DEV_KEY

    msg = (
        "FATAL: PSEUDONYM_KEY environment variable is required in production. "
        f"Set it to a random {MIN_KEY_LENGTH}+ character secret."
    )
    log.error(msg)
    raise ConfigurationError(msg)
