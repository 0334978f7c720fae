from __future__ import annotations

import hashlib

import pytest
from fastapi.testclient import TestClient

from powgate.config import Settings
from powgate.difficulty import meets_difficulty
from powgate.main import create_app

pytestmark = pytest.mark.integration


def _solve(nonce: str, difficulty: int) -> tuple[int, str]:
    counter = 0
    while True:
        digest = hashlib.sha256((nonce + str(counter)).encode()).digest()
        if meets_difficulty(digest, difficulty):
            return counter, digest.hex()
        counter += 1


@pytest.fixture
def client() -> TestClient:
    settings = Settings(POW_DIFFICULTY=4, POW_CHECK=True, POW_SECRET="secret", POW_BIND_DATA=True)
    return TestClient(create_app(settings))


def test_live(client):
    assert client.get("/live").json() == {"status": "alive"}


def test_health_reports_pow_settings(client):
    body = client.get("/health").json()
    assert body["status"] == "healthy"
    assert body["pow"] == {"difficulty": 4, "check": True}


def test_issue_nonce(client):
    body = client.get("/nonce/issue").json()
    assert body["difficulty"] == 4
    assert body["nonce_checksum"] == hashlib.sha256((body["nonce"] + "secret").encode()).hexdigest()


def test_nonce_headers_only(client):
    r = client.get("/nonce/headers")
    assert r.json() == {"status": "issued"}
    assert r.headers["X-Hash-Difficulty"] == "4"
    assert r.headers["X-Nonce-Checksum"]


def test_same_and_different_nonces(client):
    same = client.get("/nonce/same")
    assert same.headers["X-Nonce"] == same.json()["nonce"]

    different = client.get("/nonce/different")
    assert different.headers["X-Nonce"] != different.json()["nonce"]


def test_solve_and_verify(client):
    challenge = client.get("/nonce/issue").json()
    counter, hash_ = _solve(challenge["nonce"], challenge["difficulty"])
    payload = {
        "nonce": challenge["nonce"],
        "nonce_checksum": challenge["nonce_checksum"],
        "counter": counter,
        "hash": hash_,
    }
    r = client.post("/hash/verify", json=payload)
    assert r.status_code == 200, r.text
    assert r.json() == {"status": "verified"}

    # same proof, different counter: hash no longer matches
    r = client.post("/hash/verify", json={**payload, "counter": counter + 1})
    assert r.status_code == 428


def test_verify_rejects_forged_checksum(client):
    challenge = client.get("/nonce/issue").json()
    counter, hash_ = _solve(challenge["nonce"], 4)
    r = client.post(
        "/hash/verify",
        json={"nonce": challenge["nonce"], "nonce_checksum": "00" * 32, "counter": counter, "hash": hash_},
    )
    assert r.status_code == 428
    assert r.text.startswith("nonce checksum is invalid")


def test_verify_requires_json_object(client):
    r = client.post("/hash/verify", content=b"not json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.text == "request body is not valid JSON"

    assert client.post("/hash/verify", json=[1, 2]).status_code == 400


def test_login(client):
    assert client.get("/login").json() == {"difficulty": 4}

    nonce = client.get("/nonce/issue").json()["nonce"]
    counter = 0
    while True:
        digest = hashlib.sha256((nonce + "alice" + f"pw{counter}").encode()).digest()
        if meets_difficulty(digest, 4):
            break
        counter += 1
    r = client.post(
        "/login",
        json={"nonce": nonce, "username": "alice", "password": f"pw{counter}", "hash": digest.hex()},
    )
    assert r.status_code == 200
    assert r.json() == {"status": "logged_in"}

    assert client.post("/login", json={"username": "alice", "password": "x", "hash": "00"}).status_code == 400


def test_metrics_exposition(client):
    client.get("/nonce/issue")
    r = client.get("/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    body = r.text
    assert "# TYPE api_requests_total counter" in body
    assert "pow_challenges_total" in body
    assert "api_request_duration_seconds" in body
