# MIT License
# Copyright (c) 2025 Hashborn

"""
Signed-request caller identity.

A request carries the caller's compressed secp256k1 public key, a unix
timestamp and a signature over

    sha256(METHOD \\n PATH \\n TIMESTAMP \\n BODY)

The caller principal is the bech32 address derived from the public key.
"""

import logging
import time
from threading import Lock
from typing import Dict, Mapping, Optional

from stakeproto.crypto.addresses import address_from_pubkey
from stakeproto.crypto.hash import sha256
from stakeproto.crypto.keys import public_key_from_private, sign, verify

PUBKEY_HEADER = "X-Stake-Pubkey"
TIMESTAMP_HEADER = "X-Stake-Timestamp"
SIGNATURE_HEADER = "X-Stake-Signature"

logger = logging.getLogger(__name__)


class AuthError(Exception):
    pass


class ReplayCache:
    """
    Signatures accepted within the skew window.

    Entries are keyed by the signature nonce r, so a re-encoded s value or
    public key of the same signature maps to the same entry. Entries older
    than the skew window are dropped.
    """

    def __init__(self, max_entries: int = 100_000):
        self.seen: Dict[bytes, int] = {}
        self.max_entries = max_entries
        self.lock = Lock()

    def claim(self, signature: bytes, timestamp: int, now: int, max_skew_sec: int) -> None:
        """Records a verified signature. Raises AuthError if it was already used."""
        key = signature[:32]
        with self.lock:
            self._expire(now - max_skew_sec)
            if key in self.seen:
                raise AuthError("Request already used")
            if len(self.seen) >= self.max_entries:
                logger.warning(f"Replay cache full ({self.max_entries} entries), rejecting request")
                raise AuthError("Too many recent requests")
            self.seen[key] = timestamp

    def _expire(self, cutoff: int) -> None:
        stale = [key for key, ts in self.seen.items() if ts < cutoff]
        for key in stale:
            del self.seen[key]

    def __len__(self) -> int:
        with self.lock:
            return len(self.seen)


def request_digest(method: str, path: str, timestamp: int, body: bytes) -> bytes:
    return sha256(f"{method.upper()}\n{path}\n{timestamp}\n".encode("utf-8") + body)


def sign_request(priv_key: bytes, method: str, path: str, body: bytes = b"",
                 timestamp: Optional[int] = None) -> Dict[str, str]:
    """Builds the auth headers for one request."""
    ts = timestamp if timestamp is not None else int(time.time())
    pub = public_key_from_private(priv_key)
    signature = sign(request_digest(method, path, ts, body), priv_key)
    return {
        PUBKEY_HEADER: pub.hex(),
        TIMESTAMP_HEADER: str(ts),
        SIGNATURE_HEADER: signature.hex(),
    }


def authenticate(method: str, path: str, headers: Mapping[str, str], body: bytes,
                 prefix: str, max_skew_sec: int, now: Optional[int] = None,
                 replay_cache: Optional[ReplayCache] = None) -> str:
    """
    Verifies the request signature and returns the caller principal.

    Raises:
        AuthError: missing/malformed headers, stale timestamp, bad or reused signature
    """
    pub_hex = headers.get(PUBKEY_HEADER)
    ts_raw = headers.get(TIMESTAMP_HEADER)
    sig_hex = headers.get(SIGNATURE_HEADER)
    if not pub_hex or not ts_raw or not sig_hex:
        raise AuthError("Missing authentication headers")

    try:
        pub = bytes.fromhex(pub_hex)
        signature = bytes.fromhex(sig_hex)
        timestamp = int(ts_raw)
    except ValueError:
        raise AuthError("Malformed authentication headers")

    now = now if now is not None else int(time.time())
    if abs(now - timestamp) > max_skew_sec:
        raise AuthError(f"Request timestamp {timestamp} outside allowed skew of {max_skew_sec}s")

    if not verify(request_digest(method, path, timestamp, body), signature, pub):
        raise AuthError("Invalid signature")

    if replay_cache is not None:
        replay_cache.claim(signature, timestamp, now, max_skew_sec)

    return address_from_pubkey(pub, prefix=prefix)
