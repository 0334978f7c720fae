from __future__ import annotations

import hashlib
import secrets
import string
from dataclasses import dataclass
from typing import Callable

from powgate.checksum import DigestFactory, compute_checksum
from powgate.errors import NonceGenerationError

# URL-safe alphabet, 64 symbols (6 bits of entropy per character)
ALPHABET = string.ascii_letters + string.digits + "_-"

NonceGenerator = Callable[[int], str]


def random_nonce(length: int) -> str:
    """Random nonce of exactly ``length`` characters drawn from :data:`ALPHABET`."""
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def generate_secret(length: int = 32) -> bytes:
    """Default checksum key: ``length`` cryptographically random URL-safe bytes."""
    return random_nonce(length).encode("ascii")


@dataclass(frozen=True)
class IssuedNonce:
    nonce: str
    checksum: bytes = b""

    @property
    def checksum_hex(self) -> str:
        return self.checksum.hex()


class NonceIssuer:
    """Generates nonces and, when checking is enabled, their checksums."""

    def __init__(
        self,
        length: int = 10,
        *,
        check: bool = False,
        secret: bytes = b"",
        digest: DigestFactory = hashlib.sha256,
        generator: NonceGenerator | None = None,
    ) -> None:
        self.length = int(length)
        self.check = check
        self.secret = secret
        self.digest = digest
        self.generator = generator or random_nonce

    def generate(self) -> IssuedNonce:
        try:
            nonce = self.generator(self.length)
        except Exception as e:
            raise NonceGenerationError(f"nonce generation failed: {e}") from e
        if not nonce:
            raise NonceGenerationError("nonce generator returned an empty nonce")

        if not self.check:
            return IssuedNonce(nonce=nonce)
        checksum = compute_checksum(self.secret, nonce.encode("utf-8"), self.digest)
        return IssuedNonce(nonce=nonce, checksum=checksum)
