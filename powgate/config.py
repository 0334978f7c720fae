from __future__ import annotations

import hashlib
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt, PositiveInt, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from powgate.errors import ConfigurationError
from powgate.extractors import (
    CombinedExtractor,
    Extractor,
    SplitExtractor,
    header_hash_extractor,
    header_nonce_extractor,
)
from powgate.nonce import generate_secret

log = logging.getLogger("powgate.settings")

env_path = Path.cwd() / ".env"
if env_path.is_file():
    log.debug("Loading environment variables from: %s", env_path)
    load_dotenv(dotenv_path=env_path)


def _mask(s: str | bytes | None, keep: int = 4) -> str | None:
    if not s:
        return None
    if isinstance(s, bytes):
        s = s.decode("utf-8", errors="replace")
    return (s[:keep] + "…") if len(s) > keep else "…"


# ------------------------------- proof-of-work options -------------------------------


class PowConfig(BaseModel):
    """Resolved, immutable proof-of-work configuration.

    Only the extraction functions are required: either ``extract_all`` or
    ``extract_data`` (nonce and hash then default to the request headers).
    When ``check`` is on and no ``secret`` is given, a random 32 byte secret is
    generated; every nonce issued under it becomes unverifiable once the
    process restarts, so multi-process deployments should pass one explicitly.
    """

    model_config = ConfigDict(frozen=True)

    # --- extraction ---
    extract_all: Optional[Callable[[Any], Any]] = None
    extract_nonce: Optional[Callable[[Any], Any]] = None
    extract_data: Optional[Callable[[Any], Any]] = None
    extract_hash: Optional[Callable[[Any], Any]] = None

    # --- proof-of-work ---
    difficulty: NonNegativeInt = 0
    nonce_length: PositiveInt = 10
    check: bool = False
    secret: bytes = b""
    bind_data: bool = False
    digest: Callable[..., Any] = hashlib.sha256
    nonce_generator: Optional[Callable[[int], str]] = None

    # --- responses ---
    failure_status_code: int = Field(default=428, ge=100, le=599)

    # --- header names ---
    nonce_header: str = "X-Nonce"
    nonce_checksum_header: str = "X-Nonce-Checksum"
    hash_difficulty_header: str = "X-Hash-Difficulty"
    hash_header: str = "X-Hash"

    # --- per-request context keys ---
    nonce_context_key: str = "nonce"
    nonce_checksum_context_key: str = "nonceChecksum"
    hash_difficulty_context_key: str = "hashDifficulty"

    # --- response body keys ---
    nonce_data_key: str = "nonce"
    nonce_checksum_data_key: str = "nonce_checksum"
    hash_difficulty_data_key: str = "difficulty"

    @model_validator(mode="before")
    @classmethod
    def _resolve_defaults(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if data.get("extract_all") is None and data.get("extract_data") is None:
            raise ConfigurationError("extract_data must be set when extract_all is not")
        if data.get("check") and not data.get("secret"):
            data = {**data, "secret": generate_secret()}
        return data

    @property
    def extractor(self) -> Extractor:
        if self.extract_all is not None:
            return CombinedExtractor(self.extract_all)
        if self.extract_data is None:
            raise ConfigurationError("extract_data must be set when extract_all is not")
        return SplitExtractor(
            self.extract_nonce or header_nonce_extractor(self.nonce_header, self.nonce_checksum_header),
            self.extract_data,
            self.extract_hash or header_hash_extractor(self.hash_header),
        )


# --------------------------------------- environment settings ---------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    pow_difficulty: NonNegativeInt = Field(default=0, alias="POW_DIFFICULTY")
    pow_nonce_length: PositiveInt = Field(default=10, alias="POW_NONCE_LENGTH")
    pow_check: bool = Field(default=False, alias="POW_CHECK")
    # пустой секрет при включённой проверке -> будет сгенерирован на старте процесса
    pow_secret: str | None = Field(default=None, alias="POW_SECRET")
    pow_bind_data: bool = Field(default=False, alias="POW_BIND_DATA")
    pow_failure_status_code: int = Field(default=428, ge=100, le=599, alias="POW_FAILURE_STATUS_CODE")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    def pow_options(self) -> dict[str, Any]:
        """Keyword arguments for :class:`PowConfig` (extraction functions excluded)."""
        opts: dict[str, Any] = {
            "difficulty": self.pow_difficulty,
            "nonce_length": self.pow_nonce_length,
            "check": self.pow_check,
            "bind_data": self.pow_bind_data,
            "failure_status_code": self.pow_failure_status_code,
        }
        if self.pow_secret:
            opts["secret"] = self.pow_secret.encode("utf-8")
        return opts

    def debug_dump(self) -> dict[str, Any]:
        return {
            "pow": {
                "difficulty": self.pow_difficulty,
                "nonce_length": self.pow_nonce_length,
                "check": self.pow_check,
                "secret": _mask(self.pow_secret),
                "bind_data": self.pow_bind_data,
                "failure_status_code": self.pow_failure_status_code,
            },
            "log_level": self.log_level,
        }


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    log.info("Loaded settings: %s", settings.debug_dump())
    return settings
