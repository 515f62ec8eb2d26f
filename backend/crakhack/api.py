from __future__ import annotations
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

import requests
from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from crakhack.analytics_aggregator import SITE_TARGETS, AnalyticsAggregator, AnalyticsSummary
from crakhack.config.windows import DEFAULT_LOOKBACK_DAYS
from crakhack.dimension_discovery import CapabilityCache
from crakhack.errors import ConfigurationMissing, UpstreamGraphQLError, UpstreamHTTPError
from crakhack.r2_stats import R2_REQUIRED_SETTINGS, fetch_r2_stats
from crakhack.screener_auth import handle_login_submission
from crakhack.screener_gate import ScreenerGateMiddleware, is_screener_host, login_path, login_redirect
from crakhack.settings import Settings, settings
from crakhack.site_content import FILM, PROFILES, SOCIAL_LINKS
from crakhack.utils.windows import clamp_days

STATS_PAGE_PATH = "/crakhackstats666"

templates = Jinja2Templates(directory=os.path.join(os.path.dirname(__file__), "templates"))

UPSTREAM_ERRORS = (UpstreamHTTPError, UpstreamGraphQLError, requests.RequestException)


# -------------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------------

def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_aggregator(request: Request) -> AnalyticsAggregator:
    return request.app.state.aggregator


# -------------------------------------------------------------------------
# Helpers
# -------------------------------------------------------------------------

def render(request: Request, template: str, context: Optional[Dict[str, Any]] = None, status_code: int = 200):
    """Render a page with the shared film copy in context"""
    payload = {"film": FILM}
    payload.update(context or {})
    return templates.TemplateResponse(request, template, payload, status_code=status_code)


def storage_snapshot(app_settings: Settings, days: int) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
    """
    R2 numbers for the stats page as (stats, error).
    An unconfigured bucket hides the section instead of showing an error.
    """
    try:
        return fetch_r2_stats(app_settings, days=days), None
    except ConfigurationMissing:
        return None, None
    except UPSTREAM_ERRORS as e:
        print(f"[STATS] R2 upstream failure: {e}")
        return None, "storage stats are unavailable"


def breakdown_tables(summary: AnalyticsSummary) -> List[Tuple[str, list]]:
    return [
        ("Countries", summary.countries),
        ("Cities", summary.cities),
        ("Browsers", summary.browsers),
        ("Operating Systems", summary.operating_systems),
    ]


# -------------------------------------------------------------------------
# Marketing pages
# -------------------------------------------------------------------------

pages_router = APIRouter()


@pages_router.get("/health")
def health_check():
    """Basic health check"""
    return {"status": "ok"}


@pages_router.get("/")
def home(request: Request):
    return render(request, "home.html", {"social_links": SOCIAL_LINKS})


@pages_router.get("/about")
def about(request: Request):
    return render(request, "about.html", {"profiles": PROFILES})


@pages_router.get(STATS_PAGE_PATH)
def stats_page(
    request: Request,
    site: str = "main",
    days: Optional[str] = None,
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
    app_settings: Settings = Depends(get_settings),
):
    """
    Analytics dashboard plus the R2 storage snapshot. Upstream or configuration
    failures render a zeroed summary with an inline message instead of an error page.
    """
    target = site if site in SITE_TARGETS else "main"
    lookback_days = clamp_days(days)
    error: Optional[str] = None
    try:
        summary = aggregator.summarize(target=target, days=lookback_days)
    except ConfigurationMissing as e:
        print(f"[STATS] Configuration missing: {e}")
        summary, error = AnalyticsSummary.empty(target), "analytics is not configured"
    except UPSTREAM_ERRORS as e:
        print(f"[STATS] Upstream failure: {e}")
        summary, error = AnalyticsSummary.empty(target), "the analytics provider did not respond"

    r2, r2_error = storage_snapshot(app_settings, lookback_days)
    return render(request, "stats.html", {
        "summary": summary,
        "breakdowns": breakdown_tables(summary),
        "targets": list(SITE_TARGETS),
        "days": lookback_days,
        "error": error,
        "r2": r2,
        "r2_error": r2_error,
    })


# -------------------------------------------------------------------------
# Screener (namespaced; every route is registered once per prefix)
# -------------------------------------------------------------------------

def build_screener_router(namespace: str) -> APIRouter:
    router = APIRouter(prefix=namespace)

    @router.get("")
    def screener_page(request: Request, app_settings: Settings = Depends(get_settings)):
        """Protected playback page. The gate has already checked the cookie."""
        return render(request, "screener.html", {"embed_url": app_settings.SCREENER_EMBED_URL})

    @router.get("/login")
    def login_page(
        request: Request,
        error: Optional[str] = None,
        next_path: Optional[str] = Query(None, alias="next"),
    ):
        on_screener_host = is_screener_host(request.headers.get("host"), request.app.state.settings)
        return render(request, "login.html", {
            "has_error": error == "1",
            "next_path": next_path or ("/" if on_screener_host else namespace),
            "form_action": "/auth" if on_screener_host else f"{namespace}/auth",
        })

    @router.get("/auth")
    def auth_get():
        """Direct navigation to the auth endpoint goes to the login form instead of a 405."""
        return RedirectResponse(url=login_redirect(login_path(namespace), namespace), status_code=302)

    @router.post("/auth")
    def auth_post(
        request: Request,
        password: str = Form(""),
        next_path: str = Form("", alias="next"),
        app_settings: Settings = Depends(get_settings),
    ):
        return handle_login_submission(
            password=password,
            next_path=next_path,
            namespace=namespace,
            settings=app_settings,
            on_screener_host=is_screener_host(request.headers.get("host"), app_settings),
        )

    return router


# -------------------------------------------------------------------------
# JSON API
# -------------------------------------------------------------------------

api_router = APIRouter(prefix="/api")


@api_router.get("/analytics")
def get_analytics(
    site: str = "main",
    days: Optional[str] = Query(None, description="Lookback in days, clamped to [1, 90]"),
    aggregator: AnalyticsAggregator = Depends(get_aggregator),
):
    """Merged visit / request summary for one site."""
    if site not in SITE_TARGETS:
        raise HTTPException(status_code=400, detail=f"Unknown site '{site}'. Expected one of: {', '.join(SITE_TARGETS)}")
    try:
        return aggregator.summarize(target=site, days=clamp_days(days, DEFAULT_LOOKBACK_DAYS)).model_dump()
    except ConfigurationMissing as e:
        raise HTTPException(status_code=500, detail=str(e))
    except UpstreamHTTPError as e:
        raise HTTPException(status_code=502, detail={"error": "Cloudflare API error", "status": e.status_code})
    except UpstreamGraphQLError as e:
        raise HTTPException(status_code=502, detail={"error": e.message})
    except requests.RequestException as e:
        print(f"[ANALYTICS ERROR] Transport failure: {e}")
        raise HTTPException(status_code=502, detail={"error": "Cloudflare API unreachable"})


@api_router.get("/r2-stats")
def get_r2_stats(
    days: Optional[str] = Query(None, description="Lookback in days, clamped to [1, 90]"),
    app_settings: Settings = Depends(get_settings),
):
    """Object storage request counts and snapshot for the screener bucket."""
    try:
        return fetch_r2_stats(app_settings, days=days)
    except ConfigurationMissing:
        return JSONResponse(
            status_code=500,
            content={"error": f"Missing env vars. Required: {', '.join(R2_REQUIRED_SETTINGS)}."},
        )
    except UpstreamHTTPError as e:
        return JSONResponse(status_code=502, content={"error": "Cloudflare API error", "status": e.status_code})
    except UpstreamGraphQLError as e:
        return JSONResponse(status_code=502, content={"error": e.message})


# -------------------------------------------------------------------------
# App factory
# -------------------------------------------------------------------------

def create_app(app_settings: Optional[Settings] = None, aggregator: Optional[AnalyticsAggregator] = None) -> FastAPI:
    app_settings = app_settings or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        print(f"[STARTUP] Screener namespaces: {app_settings.SCREENER_PREFIXES}")
        print(f"[STARTUP] Screener hosts: {app_settings.SCREENER_HOSTS}")
        if not app_settings.SCREENER_PASSWORD:
            print("[STARTUP] SCREENER_PASSWORD is not set, the screener is locked for everyone")
        yield
        client = app.state.aggregator.client
        if client is not None:
            client.session.close()

    app = FastAPI(
        title="CRAK HACK",
        description="Marketing site, private screener and analytics for the short film CRAK HACK.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.state.settings = app_settings
    # One capability cache per process, shared by every request
    app.state.aggregator = aggregator or AnalyticsAggregator(app_settings, cache=CapabilityCache())

    allowed_origins = app_settings.ALLOWED_ORIGINS
    print(f"[STARTUP] Final allowed_origins for CORS: {allowed_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET"],
        allow_headers=["*"],
    )
    app.add_middleware(ScreenerGateMiddleware, settings=app_settings)

    app.include_router(api_router)
    for namespace in app_settings.SCREENER_PREFIXES:
        app.include_router(build_screener_router(namespace))
    app.include_router(pages_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("crakhack.api:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
