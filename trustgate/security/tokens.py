"""Signed, identity-bound anti-forgery tokens.

A token is four colon-separated fields::

    random:issuedAt:identityId:signature

``random`` is 32 secure-random bytes (hex), ``issuedAt`` is epoch
milliseconds, and ``signature`` is HMAC-SHA256 over the first three fields
using the process-wide secret. Tokens are stateless: nothing is stored, and a
token simply stops validating once it is older than the TTL.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Callable, Optional

from trustgate.core.exceptions import TokenIssuanceError
from trustgate.core.logging import get_logger

logger = get_logger(__name__)

TOKEN_DELIMITER = ":"
RANDOM_BYTES = 32
DEFAULT_TTL_SECONDS = 3600

_HEX64 = re.compile(r"^[0-9a-f]{64}$")
_DIGITS = re.compile(r"^[0-9]{1,15}$")


def epoch_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class TokenCheck(str, Enum):
    """Internal outcome of a token check.

    Everything except VALID is reported to clients as ``invalid_token``;
    the precise value only goes to logs.
    """

    VALID = "valid"
    MALFORMED = "malformed"
    IDENTITY_MISMATCH = "identity_mismatch"
    EXPIRED = "expired"
    SIGNATURE_MISMATCH = "signature_mismatch"
    ERROR = "error"


@dataclass(frozen=True)
class AntiForgeryToken:
    """Parsed form of a serialized token."""

    random: str
    issued_at: int
    identity_id: str
    signature: str

    @property
    def payload(self) -> str:
        return signing_payload(self.random, self.issued_at, self.identity_id)

    def serialize(self) -> str:
        return TOKEN_DELIMITER.join(
            (self.random, str(self.issued_at), self.identity_id, self.signature)
        )

    @classmethod
    def parse(cls, token: str) -> Optional["AntiForgeryToken"]:
        """Strictly parse a token string; None if the structure is wrong."""
        if not isinstance(token, str):
            return None
        parts = token.split(TOKEN_DELIMITER)
        if len(parts) != 4:
            return None
        random_part, issued_at, identity_id, signature = parts
        if not _HEX64.match(random_part) or not _HEX64.match(signature):
            return None
        if not _DIGITS.match(issued_at) or not identity_id:
            return None
        return cls(
            random=random_part,
            issued_at=int(issued_at),
            identity_id=identity_id,
            signature=signature,
        )


def signing_payload(random_part: str, issued_at: int, identity_id: str) -> str:
    return TOKEN_DELIMITER.join((random_part, str(issued_at), identity_id))


def sign(secret: str, payload: str) -> str:
    """HMAC-SHA256 of ``payload`` under ``secret``, hex encoded."""
    return hmac.new(secret.encode("utf-8"), payload.encode("utf-8"), hashlib.sha256).hexdigest()


class TokenIssuer:
    """Mints anti-forgery tokens bound to an authenticated identity."""

    def __init__(self, secret: str, clock: Optional[Callable[[], int]] = None):
        self._secret = secret
        self._clock = clock or epoch_millis

    def issue(self, identity_id: Optional[str]) -> Optional[str]:
        """Return a signed token for ``identity_id``.

        Returns None when there is no established identity. Raises
        TokenIssuanceError when an identity is present but cannot be bound
        into a token, so callers can tell "not authenticated" apart from
        "issuance failed".
        """
        if not identity_id:
            return None
        if TOKEN_DELIMITER in identity_id:
            logger.error(
                "Cannot bind identity containing the token delimiter",
                data={"identity_length": len(identity_id)},
            )
            raise TokenIssuanceError()

        random_part = secrets.token_bytes(RANDOM_BYTES).hex()
        issued_at = self._clock()
        payload = signing_payload(random_part, issued_at, identity_id)
        token = AntiForgeryToken(
            random=random_part,
            issued_at=issued_at,
            identity_id=identity_id,
            signature=sign(self._secret, payload),
        )
        return token.serialize()


class TokenValidator:
    """Verifies authenticity, identity binding and freshness of a token."""

    def __init__(
        self,
        secret: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._secret = secret
        self._ttl_ms = ttl_seconds * 1000
        self._clock = clock or epoch_millis

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_ms // 1000

    def inspect(self, token: Optional[str], identity_id: Optional[str]) -> TokenCheck:
        """Check ``token`` for ``identity_id`` and say why it fails, if it does.

        Never raises: anything unexpected maps to TokenCheck.ERROR.
        """
        try:
            return self._inspect(token, identity_id)
        except Exception as exc:
            logger.warning(
                "Token check raised, treating token as invalid",
                data={"error": type(exc).__name__},
            )
            return TokenCheck.ERROR

    def _inspect(self, token: Optional[str], identity_id: Optional[str]) -> TokenCheck:
        parsed = AntiForgeryToken.parse(token) if token else None
        if parsed is None:
            return TokenCheck.MALFORMED

        if not identity_id or not hmac.compare_digest(
            parsed.identity_id.encode("utf-8"), identity_id.encode("utf-8")
        ):
            return TokenCheck.IDENTITY_MISMATCH

        if self._clock() - parsed.issued_at > self._ttl_ms:
            return TokenCheck.EXPIRED

        expected = sign(self._secret, parsed.payload)
        if not hmac.compare_digest(expected.encode("ascii"), parsed.signature.encode("ascii")):
            return TokenCheck.SIGNATURE_MISMATCH

        return TokenCheck.VALID

    def validate(self, token: Optional[str], identity_id: Optional[str]) -> bool:
        """True only for an authentic, fresh token minted for ``identity_id``."""
        return self.inspect(token, identity_id) is TokenCheck.VALID


def token_issued_at(token: str) -> Optional[datetime]:
    """Issue time embedded in ``token``, or None when it is malformed.

    The value is not authenticated; use it for diagnostics only.
    """
    parsed = AntiForgeryToken.parse(token)
    if parsed is None:
        return None
    return datetime.fromtimestamp(parsed.issued_at / 1000, tz=UTC)


def is_token_expired(
    token: str,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now_ms: Optional[int] = None,
) -> bool:
    """Whether ``token`` is past its TTL; malformed tokens count as expired."""
    parsed = AntiForgeryToken.parse(token)
    if parsed is None:
        return True
    now = epoch_millis() if now_ms is None else now_ms
    return now - parsed.issued_at > ttl_seconds * 1000
