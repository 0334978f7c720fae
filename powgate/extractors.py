from __future__ import annotations

import inspect
from typing import Any, Awaitable, Callable, NamedTuple, Protocol, Union

from powgate.errors import MalformedRequestError

Maybe = Union[Any, Awaitable[Any]]

ExtractAll = Callable[[Any], Maybe]
"""``(request) -> (nonce, nonce_checksum, data, hash)``"""
ExtractNonce = Callable[[Any], Maybe]
"""``(request) -> (nonce, nonce_checksum)``"""
ExtractData = Callable[[Any], Maybe]
ExtractHash = Callable[[Any], Maybe]


class ProofFields(NamedTuple):
    nonce: str
    nonce_checksum: str
    data: str
    hash: str


class Extractor(Protocol):
    async def __call__(self, request: Any) -> ProofFields: ...


async def _call(fn: Callable[[Any], Maybe], request: Any) -> Any:
    result = fn(request)
    if inspect.isawaitable(result):
        result = await result
    return result


def _text(value: object, what: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedRequestError(f"received {what} is not valid UTF-8") from e
    return str(value)


class CombinedExtractor:
    """Pulls all four proof fields out of a request with a single function."""

    def __init__(self, extract_all: ExtractAll) -> None:
        self.extract_all = extract_all

    async def __call__(self, request: Any) -> ProofFields:
        nonce, nonce_checksum, data, hash_ = await _call(self.extract_all, request)
        return ProofFields(
            _text(nonce, "nonce"), _text(nonce_checksum, "checksum"), _text(data, "data"), _text(hash_, "hash")
        )


class SplitExtractor:
    """Nonce (with checksum), data and hash come from three separate functions."""

    def __init__(self, extract_nonce: ExtractNonce, extract_data: ExtractData, extract_hash: ExtractHash) -> None:
        self.extract_nonce = extract_nonce
        self.extract_data = extract_data
        self.extract_hash = extract_hash

    async def __call__(self, request: Any) -> ProofFields:
        nonce, nonce_checksum = await _call(self.extract_nonce, request)
        data = await _call(self.extract_data, request)
        hash_ = await _call(self.extract_hash, request)
        return ProofFields(
            _text(nonce, "nonce"), _text(nonce_checksum, "checksum"), _text(data, "data"), _text(hash_, "hash")
        )


def header_nonce_extractor(nonce_header: str, nonce_checksum_header: str) -> ExtractNonce:
    def extract_nonce(request: Any) -> tuple[str, str]:
        return request.headers.get(nonce_header, ""), request.headers.get(nonce_checksum_header, "")

    return extract_nonce


def header_hash_extractor(hash_header: str) -> ExtractHash:
    def extract_hash(request: Any) -> str:
        return request.headers.get(hash_header, "")

    return extract_hash
