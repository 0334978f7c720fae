"""Общие фикстуры для тестов powgate."""
from __future__ import annotations

from typing import Any, Callable

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient

from powgate.guard import PowGuard


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: exercises a full FastAPI app through TestClient")


def header_data(request: Request) -> str:
    return request.headers.get("X-Data", "")


def build_app(guard: PowGuard) -> FastAPI:
    app = FastAPI()
    guard.install(app)
    app.add_api_route("/nonce", guard.nonce_handler, methods=["GET"])
    app.add_api_route(
        "/nonce/same",
        guard.nonce_handler,
        methods=["GET"],
        dependencies=[Depends(guard.generate_nonce), Depends(guard.nonce_headers)],
    )

    @app.get("/nonce/headers", dependencies=[Depends(guard.nonce_headers)])
    def nonce_headers() -> dict[str, str]:
        return {}

    @app.get("/protected", dependencies=[Depends(guard.verify)])
    def protected() -> dict[str, bool]:
        return {"ok": True}

    return app


@pytest.fixture
def make_client() -> Callable[..., tuple[TestClient, PowGuard]]:
    """Factory: ``make_client(**options)`` -> (client, guard).

    Extraction defaults to headers: X-Nonce / X-Nonce-Checksum / X-Hash, data from X-Data.
    """

    def _make(**options: Any) -> tuple[TestClient, PowGuard]:
        if "extract_all" not in options:
            options.setdefault("extract_data", header_data)
        guard = PowGuard(**options)
        return TestClient(build_app(guard)), guard

    return _make
