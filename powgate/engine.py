from __future__ import annotations

import binascii
import enum
from collections.abc import MutableMapping
from dataclasses import dataclass
from typing import Any

import structlog

from powgate.checksum import verify_checksum
from powgate.config import PowConfig
from powgate.difficulty import leading_zero_bits, meets_difficulty
from powgate.errors import ExtractionError, MalformedRequestError, VerificationError
from powgate.extractors import ProofFields
from powgate.nonce import IssuedNonce, NonceIssuer

log = structlog.get_logger(__name__)


class Outcome(str, enum.Enum):
    ACCEPTED = "accepted"
    MALFORMED_REQUEST = "malformed_request"
    EXTRACTION_FAILED = "extraction_failed"
    CHECKSUM_INVALID = "checksum_invalid"
    DIFFICULTY_NOT_MET = "difficulty_not_met"


@dataclass(frozen=True)
class VerificationResult:
    outcome: Outcome
    message: str = ""
    error: VerificationError | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.ACCEPTED


@dataclass(frozen=True)
class Challenge:
    """What a client needs to start solving: nonce, hex checksum and difficulty."""

    nonce: str
    nonce_checksum: str
    difficulty: int


ACCEPTED = VerificationResult(Outcome.ACCEPTED)


def _decode_hex(value: str, what: str) -> bytes:
    try:
        return binascii.unhexlify(value)
    except (binascii.Error, ValueError) as e:
        raise MalformedRequestError(f"received {what} is not a valid hex string") from e


def _encode_utf8(value: str, what: str) -> bytes:
    try:
        return value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise MalformedRequestError(f"received {what} is not valid UTF-8") from e


class Verifier:
    """Issues nonces and runs the verification state machine for one configuration.

    Verification goes extraction -> structural checks -> hex decoding ->
    checksum -> difficulty and stops at the first failure. Nothing is
    persisted between requests; a solved (nonce, hash) pair stays valid for as
    long as the secret and difficulty do.
    """

    def __init__(self, config: PowConfig) -> None:
        self.config = config
        self.extractor = config.extractor
        self.issuer = NonceIssuer(
            config.nonce_length,
            check=config.check,
            secret=config.secret,
            digest=config.digest,
            generator=config.nonce_generator,
        )

    # --- issuance ---

    def generate_nonce(self) -> IssuedNonce:
        return self.issuer.generate()

    def stash(self, context: MutableMapping[str, Any]) -> Challenge:
        """Generate a nonce and store it in the per-request ``context``."""
        cfg = self.config
        issued = self.generate_nonce()
        context[cfg.nonce_context_key] = issued.nonce
        context[cfg.hash_difficulty_context_key] = cfg.difficulty
        if cfg.check:
            context[cfg.nonce_checksum_context_key] = issued.checksum_hex
        return Challenge(issued.nonce, issued.checksum_hex if cfg.check else "", cfg.difficulty)

    def challenge(self, context: MutableMapping[str, Any] | None = None) -> Challenge:
        """Return the nonce stashed in ``context``, or a fresh (unstashed) one."""
        cfg = self.config
        if context is not None and cfg.nonce_context_key in context:
            checksum = context.get(cfg.nonce_checksum_context_key, "") if cfg.check else ""
            return Challenge(context[cfg.nonce_context_key], checksum, cfg.difficulty)
        issued = self.generate_nonce()
        return Challenge(issued.nonce, issued.checksum_hex if cfg.check else "", cfg.difficulty)

    # --- verification ---

    async def extract(self, request: Any, reraise: tuple[type[BaseException], ...] = ()) -> ProofFields:
        try:
            return await self.extractor(request)
        except MalformedRequestError:
            raise
        except reraise:
            raise
        except Exception as e:
            raise ExtractionError("failed to extract proof of work fields") from e

    def check(self, fields: ProofFields) -> VerificationResult:
        cfg = self.config
        try:
            if not fields.nonce:
                raise MalformedRequestError("no nonce in request")
            if cfg.check and not fields.nonce_checksum:
                raise MalformedRequestError("no nonce checksum in request")
            if not fields.hash:
                raise MalformedRequestError("no hash in request")
            hash_bytes = _decode_hex(fields.hash, "hash")
            checksum_bytes = _decode_hex(fields.nonce_checksum, "checksum")
            nonce_bytes = _encode_utf8(fields.nonce, "nonce")
            data_bytes = _encode_utf8(fields.data, "data") if cfg.bind_data else b""
        except MalformedRequestError as e:
            return VerificationResult(Outcome.MALFORMED_REQUEST, str(e))

        if cfg.check and not verify_checksum(cfg.secret, nonce_bytes, checksum_bytes, cfg.digest):
            return self._failed(fields, Outcome.CHECKSUM_INVALID, "nonce checksum is invalid")

        if cfg.bind_data:
            h = cfg.digest()
            h.update(nonce_bytes)
            h.update(data_bytes)
            if h.digest() != hash_bytes:
                return self._failed(fields, Outcome.DIFFICULTY_NOT_MET, "hash does not match nonce and data")

        if not meets_difficulty(hash_bytes, cfg.difficulty):
            bits = leading_zero_bits(hash_bytes)
            reason = f"hash does not meet difficulty {cfg.difficulty} (has {bits} leading zero bits)"
            return self._failed(fields, Outcome.DIFFICULTY_NOT_MET, reason)

        return ACCEPTED

    async def verify(self, request: Any, reraise: tuple[type[BaseException], ...] = ()) -> VerificationResult:
        try:
            fields = await self.extract(request, reraise)
        except MalformedRequestError as e:
            result = VerificationResult(Outcome.MALFORMED_REQUEST, str(e))
        except ExtractionError as e:
            log.warning("pow.extraction_failed", error=str(e.__cause__ or e), exc_info=True)
            result = VerificationResult(Outcome.EXTRACTION_FAILED, str(e))
        else:
            result = self.check(fields)

        if result.ok:
            log.debug("pow.verification", outcome=result.outcome.value, difficulty=self.config.difficulty)
        else:
            log.info(
                "pow.verification",
                outcome=result.outcome.value,
                reason=result.message,
                difficulty=self.config.difficulty,
            )
        return result

    def _failed(self, fields: ProofFields, outcome: Outcome, reason: str) -> VerificationResult:
        err = VerificationError(
            hash=fields.hash,
            nonce=fields.nonce,
            nonce_checksum=fields.nonce_checksum,
            difficulty=self.config.difficulty,
            reason=reason,
            outcome=outcome,
        )
        return VerificationResult(outcome, reason, err)
