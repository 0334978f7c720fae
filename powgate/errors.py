from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from powgate.engine import Outcome


class PowError(Exception):
    """Base class for every error raised by powgate."""


class ConfigurationError(PowError):
    """Raised at construction when a required option is missing or inconsistent."""


class NonceGenerationError(PowError):
    """The nonce generator (or its entropy source) failed."""


class ExtractionError(PowError):
    """A collaborator-supplied extraction function failed. Server-side fault."""


class MalformedRequestError(PowError):
    """A required field is missing or not valid hex. Client-side fault."""


class VerificationError(PowError):
    """Reports the parameters that caused a verification to fail.

    Does *not* include the data the hash was computed against.
    """

    def __init__(
        self,
        *,
        hash: str,
        nonce: str,
        nonce_checksum: str,
        difficulty: int,
        reason: str,
        outcome: Outcome,
    ) -> None:
        super().__init__(reason)
        self.hash = hash
        self.nonce = nonce
        self.nonce_checksum = nonce_checksum
        self.difficulty = difficulty
        self.reason = reason
        self.outcome = outcome

    def __str__(self) -> str:
        return self.reason

    def describe(self) -> str:
        parts = [f"hash={self.hash}", f"nonce={self.nonce}"]
        if self.nonce_checksum:
            parts.append(f"nonce_checksum={self.nonce_checksum}")
        parts.append(f"difficulty={self.difficulty}")
        return f"{self.reason} ({', '.join(parts)})"
