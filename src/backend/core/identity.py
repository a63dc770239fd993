"""
Participant identity.

Anonymous participants are recognised by a salted one-way hash of their
network address. The raw address never leaves this module: it is not logged,
persisted or returned.
"""

import hashlib
import hmac
from functools import lru_cache
from typing import Protocol, runtime_checkable

from fastapi import Request

from core.config import settings

# Every request whose address cannot be determined lands in this bucket.
UNKNOWN_ADDRESS = "unknown"


@runtime_checkable
class ParticipantIdentifier(Protocol):
    """Maps a raw client address to an opaque participant hash."""

    @property
    def namespace(self) -> str: ...

    def identify(self, raw_address: str | None) -> str: ...


def hash_participant(raw_address: str | None, salt: str) -> str:
    """
    Hash a client address with the deployment salt.

    Args:
        raw_address: Client address, or None when it could not be determined
        salt: Deployment-wide secret salt

    Returns:
        Hex-encoded HMAC-SHA256 digest
    """
    address = (raw_address or "").strip() or UNKNOWN_ADDRESS
    return hmac.new(salt.encode(), address.encode(), hashlib.sha256).hexdigest()


class SaltedAddressIdentifier:
    """Default identifier: HMAC-SHA256 of the address keyed by a secret salt."""

    def __init__(self, salt: str):
        if not salt:
            raise ValueError("A non-empty salt is required")
        self._salt = salt
        # Short fingerprint of the salt so hashes from different deployments
        # can be told apart without revealing the salt itself.
        self._namespace = hashlib.sha256(f"namespace:{salt}".encode()).hexdigest()[:12]

    @property
    def namespace(self) -> str:
        return self._namespace

    def identify(self, raw_address: str | None) -> str:
        return hash_participant(raw_address, self._salt)

    def is_unknown(self, participant_hash: str) -> bool:
        """Whether a hash is the shared bucket for undeterminable addresses."""
        return hmac.compare_digest(participant_hash, self.identify(None))


@lru_cache
def get_participant_identifier() -> SaltedAddressIdentifier:
    """Process-wide identifier built from settings."""
    return SaltedAddressIdentifier(settings.PARTICIPANT_HASH_SALT)


def get_client_address(request: Request) -> str | None:
    """
    Extract the client address from a request.

    Honours proxy headers (first X-Forwarded-For hop, then X-Real-IP) when
    TRUST_PROXY_HEADERS is enabled, otherwise uses the socket peer.
    """
    if settings.TRUST_PROXY_HEADERS:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            first_hop = forwarded_for.split(",")[0].strip()
            if first_hop:
                return first_hop

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip.strip()

    if request.client:
        return request.client.host

    return None
