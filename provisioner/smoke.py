"""
End-to-end smoke checks through the gateway after provisioning.
Acquires tokens with the password grant (test accounts only) and exercises
/public, /profile, /user and /admin with each role.
"""
import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

PUBLIC_MESSAGE = "This is a public endpoint."
USER_MESSAGE = "Hello, user-level endpoint!"
ADMIN_MESSAGE = "Hello, admin-level endpoint!"


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str = ""


def fetch_access_token(
    http: httpx.Client,
    token_url: str,
    *,
    client_id: str,
    username: str,
    password: str,
) -> str:
    """Password grant. Raises ValueError when no access_token comes back."""
    r = http.post(
        token_url,
        data={
            "grant_type": "password",
            "client_id": client_id,
            "username": username,
            "password": password,
        },
        headers={"Accept": "application/json"},
    )
    if r.status_code != 200:
        raise ValueError(f"token endpoint returned HTTP {r.status_code}")
    token = r.json().get("access_token")
    if not token:
        raise ValueError("token response has no access_token")
    return token


def _get(http: httpx.Client, url: str, token: str | None = None) -> httpx.Response:
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return http.get(url, headers=headers)


def _message(r: httpx.Response) -> str:
    try:
        body = r.json()
    except ValueError:
        return ""
    return body.get("message", "") if isinstance(body, dict) else ""


def _expect_status(name: str, r: httpx.Response, expected: int) -> CheckResult:
    return CheckResult(name, r.status_code == expected, f"HTTP {r.status_code}, expected {expected}")


def _expect_message(name: str, r: httpx.Response, predicate, shown: str) -> CheckResult:
    msg = _message(r)
    ok = r.status_code == 200 and predicate(msg)
    return CheckResult(name, ok, f"HTTP {r.status_code}, message {msg!r}, expected {shown}")


def run_checks(http: httpx.Client, gateway_url: str, *, user_token: str, admin_token: str) -> list[CheckResult]:
    """user_token carries only the user role, admin_token only the admin role."""
    base = gateway_url.rstrip("/")
    results = [
        _expect_message("public", _get(http, f"{base}/public"), lambda m: m == PUBLIC_MESSAGE, repr(PUBLIC_MESSAGE)),
        _expect_message(
            "profile with token", _get(http, f"{base}/profile", user_token), lambda m: m.startswith("Hello, "), "'Hello, ...'"
        ),
        _expect_status("profile without token", _get(http, f"{base}/profile"), 401),
        _expect_message("user as user", _get(http, f"{base}/user", user_token), lambda m: m == USER_MESSAGE, repr(USER_MESSAGE)),
        _expect_status("user as admin-only", _get(http, f"{base}/user", admin_token), 403),
        _expect_status("admin as user", _get(http, f"{base}/admin", user_token), 403),
        _expect_message(
            "admin as admin", _get(http, f"{base}/admin", admin_token), lambda m: m == ADMIN_MESSAGE, repr(ADMIN_MESSAGE)
        ),
    ]
    for result in results:
        log = logger.info if result.passed else logger.error
        log("%s %s: %s", "PASS" if result.passed else "FAIL", result.name, result.detail)
    return results
