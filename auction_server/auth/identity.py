"""Identity supplied by the upstream authentication gateway.

In ``header`` mode the gateway is trusted to set ``X-User-ID`` and
``X-User-Name``. In ``signed`` mode the gateway also sends
``X-Identity-Timestamp`` and ``X-Identity-Signature``, an Ed25519 signature
over the canonical JSON of ``{"user_id", "display_name", "ts"}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from ..config import AuthConfig
from ..transport.signatures import SignatureError, load_public_key, verify_signature
from ..transport.timestamps import TimestampError, assert_within_skew

logger = logging.getLogger(__name__)

USER_ID_HEADER = "X-User-ID"
USER_NAME_HEADER = "X-User-Name"
TIMESTAMP_HEADER = "X-Identity-Timestamp"
SIGNATURE_HEADER = "X-Identity-Signature"


@dataclass(frozen=True)
class Identity:
    authenticated: bool
    user_id: str | None = None
    display_name: str | None = None


ANONYMOUS = Identity(authenticated=False)


def signed_claims(user_id: str, display_name: str, ts: str) -> dict[str, str]:
    return {"user_id": user_id, "display_name": display_name, "ts": ts}


class IdentityResolver:
    def __init__(self, config: AuthConfig) -> None:
        self._default_name = config.default_display_name
        self._max_skew_ms = config.max_clock_skew_ms
        self._public_key = load_public_key(config.public_key) if config.mode == "signed" else None

    def resolve(self, headers: Mapping[str, str], now: datetime | None = None) -> Identity:
        user_id = (headers.get(USER_ID_HEADER) or "").strip()
        if not user_id:
            return ANONYMOUS
        raw_name = (headers.get(USER_NAME_HEADER) or "").strip()
        if self._public_key is not None:
            ts = headers.get(TIMESTAMP_HEADER) or ""
            try:
                assert_within_skew(ts, max_skew_ms=self._max_skew_ms, now=now)
                verify_signature(
                    signed_claims(user_id, raw_name, ts),
                    headers.get(SIGNATURE_HEADER) or "",
                    self._public_key,
                )
            except (SignatureError, TimestampError) as exc:
                logger.warning("rejected identity assertion for %s: %s", user_id, exc)
                return ANONYMOUS
        return Identity(
            authenticated=True,
            user_id=user_id,
            display_name=raw_name or self._default_name,
        )
