from __future__ import annotations

import inspect
import xml.etree.ElementTree as ET
from typing import Any, Awaitable, Callable, Optional, Union

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.exceptions import HTTPException

from powgate.config import PowConfig
from powgate.engine import Challenge, Outcome, Verifier
from powgate.errors import ConfigurationError, NonceGenerationError, PowError, VerificationError
from powgate.telemetry.logging import get_logger
from powgate.telemetry.metrics import pow_challenges_total, pow_verifications_total

log = get_logger()

FailureHandler = Callable[
    [Request, VerificationError], Union[Optional[Response], Awaitable[Optional[Response]]]
]

MIME_JSON = "application/json"
MIME_XML = "application/xml"
_OFFERED = (MIME_JSON, MIME_XML)


class PowAbort(PowError):
    """Stops the request pipeline with an already-built response."""

    def __init__(self, response: Response) -> None:
        super().__init__(f"request aborted with status {response.status_code}")
        self.response = response


def _accepts(media_range: str, offer: str) -> bool:
    if media_range in ("*/*", offer):
        return True
    if media_range.endswith("/*"):
        return offer.startswith(media_range[:-1])
    return offer == MIME_XML and media_range == "text/xml"


def negotiate(accept: str | None) -> str:
    """Pick JSON or XML from an Accept header. JSON wins ties and the empty header."""
    best, best_q = MIME_JSON, 0.0
    for part in (accept or "").split(","):
        media_range, _, params = part.partition(";")
        media_range = media_range.strip().lower()
        if not media_range:
            continue
        q = 1.0
        for param in params.split(";"):
            key, _, value = param.strip().partition("=")
            if key == "q":
                try:
                    q = float(value)
                except ValueError:
                    q = 0.0
        for offer in _OFFERED:
            if q > best_q and _accepts(media_range, offer):
                best, best_q = offer, q
    return best


def render_xml(body: dict[str, Any]) -> bytes:
    root = ET.Element("map")
    for key, value in body.items():
        ET.SubElement(root, key).text = str(value)
    return ET.tostring(root, encoding="utf-8")


class PowGuard:
    """FastAPI integration for proof-of-work challenges.

    Issue nonces with :meth:`nonce_handler` (endpoint), :meth:`nonce_headers`
    and :meth:`generate_nonce` (dependencies); protect routes with
    ``Depends(guard.verify)``. Call :meth:`install` once per app so aborted
    requests turn into responses.

    On a failed proof the request is aborted with ``failure_status_code``
    (428 by default) unless ``on_failed_verification`` builds another response.
    """

    def __init__(
        self,
        config: PowConfig | None = None,
        *,
        on_failed_verification: FailureHandler | None = None,
        **options: Any,
    ) -> None:
        if config is None:
            config = PowConfig(**options)
        elif options:
            raise ConfigurationError("pass either a PowConfig or keyword options, not both")
        self.config = config
        self.verifier = Verifier(config)
        self.on_failed_verification: FailureHandler = on_failed_verification or self.default_failure_response

    @property
    def difficulty(self) -> int:
        return self.config.difficulty

    def install(self, app: FastAPI) -> None:
        install_exception_handlers(app)

    def default_failure_response(self, request: Request, error: VerificationError) -> Response:
        return PlainTextResponse(error.describe(), status_code=self.config.failure_status_code)

    @staticmethod
    def context(request: Request) -> dict[str, Any]:
        """Per-request key/value store shared by the guard's pipeline steps."""
        ctx = getattr(request.state, "pow", None)
        if ctx is None:
            ctx = {}
            request.state.pow = ctx
        return ctx

    def _challenge(self, request: Request) -> Challenge:
        ctx = self.context(request)
        stashed = self.config.nonce_context_key in ctx
        challenge = self.verifier.challenge(ctx)
        if not stashed:
            pow_challenges_total.inc()
        return challenge

    # --- issuance ---

    def generate_nonce(self, request: Request) -> None:
        """Dependency: generate a nonce and keep it for later steps of the same request."""
        self.verifier.stash(self.context(request))
        pow_challenges_total.inc()

    def nonce_headers(self, request: Request, response: Response) -> None:
        """Dependency: expose the nonce, its checksum and the difficulty as response headers."""
        cfg = self.config
        challenge = self._challenge(request)
        response.headers[cfg.nonce_header] = challenge.nonce
        response.headers[cfg.hash_difficulty_header] = str(challenge.difficulty)
        if cfg.check:
            response.headers[cfg.nonce_checksum_header] = challenge.nonce_checksum

    def nonce_handler(self, request: Request, response: Response) -> Response:
        """Endpoint: return the nonce in a JSON or XML body depending on the Accept header."""
        cfg = self.config
        challenge = self._challenge(request)
        body: dict[str, Any] = {
            cfg.nonce_data_key: challenge.nonce,
            cfg.hash_difficulty_data_key: challenge.difficulty,
        }
        if cfg.check:
            body[cfg.nonce_checksum_data_key] = challenge.nonce_checksum

        if negotiate(request.headers.get("accept")) == MIME_XML:
            out: Response = Response(render_xml(body), media_type=MIME_XML)
        else:
            out = JSONResponse(body)
        # FastAPI does not merge dependency headers into a returned Response
        out.headers.raw.extend(response.headers.raw)
        return out

    # --- verification ---

    async def verify(self, request: Request) -> None:
        """Dependency: pass through on a valid proof, abort the request otherwise."""
        result = await self.verifier.verify(request, reraise=(HTTPException, PowAbort))
        pow_verifications_total.labels(outcome=result.outcome.value).inc()
        if result.ok:
            return
        if result.outcome is Outcome.MALFORMED_REQUEST:
            raise PowAbort(PlainTextResponse(result.message, status_code=400))
        if result.outcome is Outcome.EXTRACTION_FAILED:
            raise PowAbort(PlainTextResponse(result.message, status_code=500))

        error = result.error
        if error is None:
            raise PowAbort(PlainTextResponse(result.message, status_code=self.config.failure_status_code))
        response = self.on_failed_verification(request, error)
        if inspect.isawaitable(response):
            response = await response
        if response is not None and not isinstance(response, Response):
            log.warning("pow.failure_hook_bad_response", returned=type(response).__name__)
            response = None
        raise PowAbort(response or self.default_failure_response(request, error))


async def _pow_abort_handler(request: Request, exc: Exception) -> Response:
    if not isinstance(exc, PowAbort):
        raise exc
    return exc.response


async def _nonce_generation_handler(request: Request, exc: Exception) -> Response:
    log.error("pow.nonce_generation_failed", error=str(exc))
    return PlainTextResponse("failed to generate nonce", status_code=500)


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PowAbort, _pow_abort_handler)
    app.add_exception_handler(NonceGenerationError, _nonce_generation_handler)
