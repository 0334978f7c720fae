from powgate.checksum import compute_checksum, verify_checksum
from powgate.config import PowConfig, Settings, get_settings
from powgate.difficulty import leading_zero_bits, meets_difficulty
from powgate.engine import Challenge, Outcome, VerificationResult, Verifier
from powgate.errors import (
    ConfigurationError,
    ExtractionError,
    MalformedRequestError,
    NonceGenerationError,
    PowError,
    VerificationError,
)
from powgate.extractors import CombinedExtractor, ProofFields, SplitExtractor
from powgate.guard import PowAbort, PowGuard, install_exception_handlers
from powgate.nonce import IssuedNonce, NonceIssuer, generate_secret, random_nonce

__all__ = [
    "Challenge",
    "CombinedExtractor",
    "ConfigurationError",
    "ExtractionError",
    "IssuedNonce",
    "MalformedRequestError",
    "NonceGenerationError",
    "NonceIssuer",
    "Outcome",
    "PowAbort",
    "PowConfig",
    "PowError",
    "PowGuard",
    "ProofFields",
    "Settings",
    "SplitExtractor",
    "VerificationError",
    "VerificationResult",
    "Verifier",
    "compute_checksum",
    "generate_secret",
    "get_settings",
    "install_exception_handlers",
    "leading_zero_bits",
    "meets_difficulty",
    "random_nonce",
    "verify_checksum",
]
