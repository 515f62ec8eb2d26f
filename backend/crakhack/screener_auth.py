from __future__ import annotations
"""
Screener credential check and session issuance.

The session is a single cookie holding "ok"; there is no server-side store,
so a session ends only when the cookie expires or the password is rotated.
"""

import hmac
from typing import Optional
from urllib.parse import urlencode, quote

from fastapi.responses import RedirectResponse

from crakhack.errors import AuthenticationFailed
from crakhack.screener_gate import COOKIE_NAME, COOKIE_VALUE, login_path
from crakhack.settings import Settings

COOKIE_MAX_AGE_SECONDS = 60 * 60 * 24 * 30


def verify_password(password: Optional[str], settings: Settings) -> None:
    """
    Compare the submitted password with SCREENER_PASSWORD byte for byte.
    An unconfigured secret always fails.

    Raises:
        AuthenticationFailed on any mismatch.
    """
    expected = settings.SCREENER_PASSWORD or ""
    if not expected:
        raise AuthenticationFailed()
    if not hmac.compare_digest((password or "").encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationFailed()


def safe_next_path(next_path: Optional[str], default: str) -> str:
    """
    Keep `next` a same-origin path: a single leading '/', no scheme,
    no protocol-relative '//' and no backslashes. Otherwise use `default`.
    """
    candidate = (next_path or "").strip()
    if not candidate.startswith("/") or candidate.startswith("//"):
        return default
    if "\\" in candidate or "://" in candidate.split("?", 1)[0]:
        return default
    return candidate


def failure_redirect(namespace: str, next_path: str, on_screener_host: bool = False) -> RedirectResponse:
    """Back to the login form with ?error=1 and the submitted next."""
    query = urlencode({"error": "1", "next": next_path}, quote_via=quote, safe="")
    # 303 so the browser re-requests the form with GET
    return RedirectResponse(url=f"{login_path(namespace, on_screener_host)}?{query}", status_code=303)


def success_redirect(next_path: str) -> RedirectResponse:
    """Redirect to next and set the session cookie."""
    response = RedirectResponse(url=next_path, status_code=303)
    response.set_cookie(
        key=COOKIE_NAME,
        value=COOKIE_VALUE,
        max_age=COOKIE_MAX_AGE_SECONDS,
        path="/",
        secure=True,
        httponly=True,
        samesite="lax",
    )
    return response


def handle_login_submission(
    password: Optional[str],
    next_path: Optional[str],
    namespace: str,
    settings: Settings,
    on_screener_host: bool = False,
) -> RedirectResponse:
    """
    Validate a login form post and build the redirect.
    Authentication failures never escape: they become a redirect with error=1.
    """
    default_next = "/" if on_screener_host else namespace
    target = safe_next_path(next_path, default_next)
    try:
        verify_password(password, settings)
    except AuthenticationFailed:
        print(f"[AUTH] Rejected screener login for {namespace} (next={target})")
        return failure_redirect(namespace, target, on_screener_host)

    print(f"[AUTH] Screener session issued for {namespace} (next={target})")
    return success_redirect(target)
