"""
APNs Provider Token — ES256 JWT generation and caching.

APNs token-based auth requires a JWT signed with the team's .p8 key:
- header: alg=ES256, kid=<Key ID>
- claims: iss=<Team ID>, iat=<issued-at epoch seconds>

Apple rejects tokens older than 60 minutes and throttles clients that
regenerate too often, so a token is reused until it is 50 minutes old.
The parsed private key never changes at runtime and is kept for the
lifetime of the cache.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Callable

import jwt
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from app.core.config import (
    APNS_AUTH_KEY_PATH,
    APNS_KEY_ID,
    APNS_KEY_P8,
    APNS_TEAM_ID,
)
from app.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

TOKEN_REFRESH_INTERVAL = 50 * 60  # 50 minutes (tokens valid for 60)


# ===================================================================
# Auth Key Loading
# ===================================================================

def _load_auth_key() -> str:
    """
    Return the APNs .p8 private key as PEM text.

    APNS_KEY_P8 wins when set. Secrets stores often flatten newlines to a
    literal backslash-n, which is undone here. Otherwise the key is read
    from APNS_AUTH_KEY_PATH.

    Raises:
        ConfigurationError: If neither source is configured or the file
            cannot be read.
    """
    if APNS_KEY_P8:
        return APNS_KEY_P8.replace("\\n", "\n")

    if not APNS_AUTH_KEY_PATH:
        raise ConfigurationError(
            "APNs signing key not configured. "
            "Set APNS_KEY_P8 or APNS_AUTH_KEY_PATH."
        )
    key_path = Path(APNS_AUTH_KEY_PATH)
    if not key_path.exists():
        raise ConfigurationError(
            f"APNs auth key file not found: {APNS_AUTH_KEY_PATH}"
        )
    try:
        return key_path.read_text()
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(
            f"APNs auth key file could not be read: {exc}"
        ) from exc


def _parse_signing_key(pem: str) -> ec.EllipticCurvePrivateKey:
    """Parse PEM text into a P-256 private key."""
    try:
        key = serialization.load_pem_private_key(pem.encode(), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise ConfigurationError(f"Invalid APNs signing key: {exc}") from exc

    if not isinstance(key, ec.EllipticCurvePrivateKey) or not isinstance(
        key.curve, ec.SECP256R1
    ):
        raise ConfigurationError("APNs signing key must be an EC P-256 key")
    return key


# ===================================================================
# Token Cache
# ===================================================================

class ApnsTokenCache:
    """
    Issues APNs provider tokens and reuses each one for refresh_interval.

    The clock is injectable so tests can step time across the refresh
    boundary. A lock serializes refresh; concurrent dispatches in the same
    window all get the same token.
    """

    def __init__(
        self,
        key_id: str,
        team_id: str,
        key_loader: Callable[[], str] = _load_auth_key,
        *,
        clock: Callable[[], float] = time.time,
        refresh_interval: int = TOKEN_REFRESH_INTERVAL,
    ):
        self.key_id = key_id
        self.team_id = team_id
        self._key_loader = key_loader
        self._clock = clock
        self.refresh_interval = refresh_interval

        self._signing_key: ec.EllipticCurvePrivateKey | None = None
        self._token: str | None = None
        self._issued_at: int = 0
        self._lock = threading.Lock()

    @property
    def issued_at(self) -> int:
        return self._issued_at

    def _get_signing_key(self) -> ec.EllipticCurvePrivateKey:
        if self._signing_key is None:
            self._signing_key = _parse_signing_key(self._key_loader())
        return self._signing_key

    def get_token(self) -> str:
        """
        Return a valid provider token, signing a new one if the cached
        token is missing or at least refresh_interval seconds old.

        Raises:
            ConfigurationError: If the key id, team id, or key is missing
                or unusable.
        """
        if not self.key_id or not self.team_id:
            raise ConfigurationError(
                "APNs credentials not configured. "
                "Set APNS_KEY_ID and APNS_TEAM_ID."
            )

        with self._lock:
            now = int(self._clock())
            if self._token and (now - self._issued_at) < self.refresh_interval:
                return self._token

            token = jwt.encode(
                {"iss": self.team_id, "iat": now},
                self._get_signing_key(),
                algorithm="ES256",
                headers={"kid": self.key_id},
            )
            self._token = token
            self._issued_at = now

        logger.debug("Generated new APNs JWT token (key_id=%s)", self.key_id)
        return token

    def reset(self) -> None:
        """Drop the cached token (the parsed key is kept)."""
        with self._lock:
            self._token = None
            self._issued_at = 0


_token_cache: ApnsTokenCache | None = None


def get_token_cache() -> ApnsTokenCache:
    """Return the process-wide token cache, creating it on first use."""
    global _token_cache
    if _token_cache is None:
        _token_cache = ApnsTokenCache(APNS_KEY_ID, APNS_TEAM_ID)
    return _token_cache
