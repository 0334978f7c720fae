from __future__ import annotations

from typing import Any

from fastapi import Depends, FastAPI, Request

from powgate.config import Settings, get_settings
from powgate.errors import MalformedRequestError
from powgate.guard import PowGuard, install_exception_handlers
from powgate.middleware import ObservabilityMiddleware
from powgate.routers.health import router as health_router
from powgate.telemetry.logging import init_logging
from powgate.telemetry.metrics import router as metrics_router


async def _json_object(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError as e:
        raise MalformedRequestError("request body is not valid JSON") from e
    if not isinstance(body, dict):
        raise MalformedRequestError("request body must be a JSON object")
    return body


async def extract_counter(request: Request) -> tuple[str, str, str, str]:
    """Proof over a numeric ``counter`` posted together with the nonce fields."""
    body = await _json_object(request)
    counter = body.get("counter")
    if isinstance(counter, (int, float)) and not isinstance(counter, bool):
        data = f"{counter:.0f}"
    else:
        data = str(counter or "")
    return body.get("nonce", ""), body.get("nonce_checksum", ""), data, body.get("hash", "")


async def extract_credentials(request: Request) -> tuple[str, str, str, str]:
    """Login proof: data is username followed by password."""
    body = await _json_object(request)
    data = str(body.get("username") or "") + str(body.get("password") or "")
    return body.get("nonce", ""), "", data, body.get("hash", "")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    init_logging()

    pow_guard = PowGuard(extract_all=extract_counter, **settings.pow_options())
    # логин: без checksum, та же сложность
    login_guard = PowGuard(
        extract_all=extract_credentials,
        difficulty=settings.pow_difficulty,
        nonce_length=settings.pow_nonce_length,
        bind_data=settings.pow_bind_data,
        failure_status_code=settings.pow_failure_status_code,
    )

    app = FastAPI(title="powgate")
    app.state.pow_guard = pow_guard
    app.state.login_guard = login_guard
    app.dependency_overrides[get_settings] = lambda: settings

    # Observability middleware (request metrics + structured logs)
    app.add_middleware(ObservabilityMiddleware)
    install_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(metrics_router)  # /metrics

    app.add_api_route("/nonce/issue", pow_guard.nonce_handler, methods=["GET"], tags=["pow"])
    app.add_api_route(
        "/nonce/same",
        pow_guard.nonce_handler,
        methods=["GET"],
        dependencies=[Depends(pow_guard.generate_nonce), Depends(pow_guard.nonce_headers)],
        tags=["pow"],
    )
    app.add_api_route(
        "/nonce/different",
        pow_guard.nonce_handler,
        methods=["GET"],
        dependencies=[Depends(pow_guard.nonce_headers)],
        tags=["pow"],
    )

    @app.get("/nonce/headers", dependencies=[Depends(pow_guard.nonce_headers)], tags=["pow"])
    def nonce_headers() -> dict[str, str]:
        return {"status": "issued"}

    @app.post("/hash/verify", dependencies=[Depends(pow_guard.verify)], tags=["pow"])
    def hash_verify() -> dict[str, str]:
        return {"status": "verified"}

    @app.get("/login", tags=["auth"])
    def login_difficulty() -> dict[str, int]:
        return {"difficulty": login_guard.difficulty}

    @app.post("/login", dependencies=[Depends(login_guard.verify)], tags=["auth"])
    def login() -> dict[str, str]:
        return {"status": "logged_in"}

    return app


app = create_app()
