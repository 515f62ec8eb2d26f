from __future__ import annotations
"""
Screener Access Gate
====================

Runs in front of every route and decides, per request, whether to let it
through, rewrite it onto the screener namespace, or send the browser to login.

Decision order:
  1. Asset-like paths                          -> ALLOW
  2. Screener host, /login or /auth            -> REWRITE_INTO_SCREENER_NAMESPACE
  3. Screener host, /                          -> REWRITE_TO_SCREENER_ROOT (or login)
  4. Outside every protected namespace         -> ALLOW
  5. <namespace>/login, <namespace>/auth       -> ALLOW
  6. Link-preview crawler user agent           -> ALLOW
  7. Session cookie == "ok" (password set)     -> ALLOW
  8. Anything else                             -> REDIRECT_TO_LOGIN (?next=<path>)
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from crakhack.settings import Settings

COOKIE_NAME = "crakhack_screener"
COOKIE_VALUE = "ok"

PUBLIC_SUB_PATHS = ("/login", "/auth")

ASSET_PREFIXES = ("/static", "/_next", "/favicon", "/robots", "/sitemap", "/images")
ASSET_SUFFIXES = (".svg", ".jpg", ".png")

PREVIEW_BOT_PATTERN = re.compile(
    r"facebookexternalhit|twitterbot|slackbot|discordbot|whatsapp|telegrambot|linkedinbot|"
    r"pinterest|embedly|vkshare|applebot|googlebot|bingbot|yandex|duckduckbot",
    re.IGNORECASE,
)


class GateAction(str, Enum):
    ALLOW = "allow"
    REDIRECT_TO_LOGIN = "redirect_to_login"
    REWRITE_TO_SCREENER_ROOT = "rewrite_to_screener_root"
    REWRITE_INTO_SCREENER_NAMESPACE = "rewrite_into_screener_namespace"


@dataclass(frozen=True)
class GateDecision:
    """
    action:   what the middleware should do
    path:     internal path to serve (rewrites only)
    location: redirect target (REDIRECT_TO_LOGIN only)
    """
    action: GateAction
    path: Optional[str] = None
    location: Optional[str] = None


ALLOW = GateDecision(GateAction.ALLOW)


# -------------------------------------------------------------------------
# Predicates
# -------------------------------------------------------------------------

def normalize_host(host: Optional[str]) -> str:
    return (host or "").split(":")[0].strip().lower()


def is_screener_host(host: Optional[str], settings: Settings) -> bool:
    return normalize_host(host) in settings.SCREENER_HOSTS


def is_public_asset(path: str) -> bool:
    return path.startswith(ASSET_PREFIXES) or path.endswith(ASSET_SUFFIXES)


def is_preview_bot(user_agent: Optional[str]) -> bool:
    return bool(PREVIEW_BOT_PATTERN.search(user_agent or ""))


def _under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def protected_namespace(path: str, settings: Settings) -> Optional[str]:
    """Return the screener namespace containing `path`, or None."""
    for prefix in settings.SCREENER_PREFIXES:
        if _under(path, prefix):
            return prefix
    return None


def is_public_sub_path(path: str, namespace: str) -> bool:
    return any(_under(path, namespace + sub_path) for sub_path in PUBLIC_SUB_PATHS)


def has_valid_session(cookies: Mapping[str, str], settings: Settings) -> bool:
    """
    The cookie must hold exactly "ok".
    With no screener password configured nobody is authorized.
    """
    if not settings.SCREENER_PASSWORD:
        return False
    return cookies.get(COOKIE_NAME) == COOKIE_VALUE


def login_path(namespace: str, on_screener_host: bool = False) -> str:
    """Login route as the browser should see it."""
    return "/login" if on_screener_host else f"{namespace}/login"


def login_redirect(login: str, next_path: str) -> str:
    """encodeURIComponent-style escaping so '/' becomes %2F."""
    return f"{login}?next={quote(next_path, safe='')}"


# -------------------------------------------------------------------------
# Decision
# -------------------------------------------------------------------------

def decide_access(
    path: str,
    host: Optional[str],
    cookies: Mapping[str, str],
    settings: Settings,
    query: str = "",
    user_agent: Optional[str] = None,
) -> GateDecision:
    """Pure per-request access decision. Never cached."""
    path = path or "/"

    if is_public_asset(path):
        return ALLOW

    primary = settings.SCREENER_PREFIX.rstrip("/")
    on_screener_host = is_screener_host(host, settings)

    if on_screener_host and path in PUBLIC_SUB_PATHS:
        return GateDecision(GateAction.REWRITE_INTO_SCREENER_NAMESPACE, path=primary + path)

    if on_screener_host and path == "/":
        if has_valid_session(cookies, settings):
            return GateDecision(GateAction.REWRITE_TO_SCREENER_ROOT, path=primary)
        return GateDecision(
            GateAction.REDIRECT_TO_LOGIN,
            location=login_redirect(login_path(primary, on_screener_host=True), "/"),
        )

    namespace = protected_namespace(path, settings)
    if namespace is None:
        return ALLOW

    if is_public_sub_path(path, namespace):
        return ALLOW

    if settings.ALLOW_PREVIEW_BOTS and is_preview_bot(user_agent):
        return ALLOW

    if has_valid_session(cookies, settings):
        return ALLOW

    next_path = f"{path}?{query}" if query else path
    return GateDecision(
        GateAction.REDIRECT_TO_LOGIN,
        location=login_redirect(login_path(namespace), next_path),
    )


# -------------------------------------------------------------------------
# Middleware
# -------------------------------------------------------------------------

class ScreenerGateMiddleware(BaseHTTPMiddleware):
    """Applies decide_access to every request before routing."""

    def __init__(self, app, settings: Settings):
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next):
        decision = decide_access(
            path=request.url.path,
            host=request.headers.get("host"),
            cookies=request.cookies,
            settings=self.settings,
            query=request.url.query,
            user_agent=request.headers.get("user-agent"),
        )

        if decision.action == GateAction.REDIRECT_TO_LOGIN:
            print(f"[GATE] {request.method} {request.url.path} -> {decision.location}")
            return RedirectResponse(url=decision.location, status_code=307)

        if decision.action in (GateAction.REWRITE_TO_SCREENER_ROOT, GateAction.REWRITE_INTO_SCREENER_NAMESPACE):
            request.scope["path"] = decision.path
            request.scope["raw_path"] = decision.path.encode("utf-8")
            request.scope["screener_rewrite"] = True

        return await call_next(request)
