"""tests/helpers.py -- Request helpers shared by the integration tests."""

from __future__ import annotations

from fastapi.testclient import TestClient

from core.config import get_settings

COOKIE = get_settings().session_cookie_name


def issue_token(client: TestClient, path: str, username: str, password: str) -> str:
    """POST credentials to /register or /login and return the session token.

    The client's cookie jar is cleared afterwards so each test controls
    exactly which session a request carries (via auth_headers()).
    """
    resp = client.post(path, json={"username": username, "password": password})
    assert resp.status_code in (200, 201), f"{path} failed: {resp.status_code} {resp.text}"
    token = resp.cookies.get(COOKIE)
    assert token, f"{path} did not set the {COOKIE} cookie"
    client.cookies.clear()
    return token


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
