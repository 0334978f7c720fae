from __future__ import annotations

import hashlib
import hmac
from typing import Any, Callable

DigestFactory = Callable[[], Any]


def compute_checksum(secret: bytes, nonce: bytes, digest: DigestFactory = hashlib.sha256) -> bytes:
    """Keyed integrity tag for a nonce: ``digest(nonce || secret)``.

    The tag lets the server recognise nonces it issued itself without keeping
    them anywhere; the secret is the only state that has to survive.
    """
    h = digest()
    h.update(nonce)
    h.update(secret)
    return h.digest()


def verify_checksum(
    secret: bytes, nonce: bytes, checksum: bytes, digest: DigestFactory = hashlib.sha256
) -> bool:
    expected = compute_checksum(secret, nonce, digest)
    return hmac.compare_digest(expected, checksum)
