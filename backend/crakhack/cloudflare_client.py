from __future__ import annotations
"""
Cloudflare GraphQL Analytics API Client
Handles authentication, transport and error translation for analytics queries
"""

from typing import Any, Dict, List, Optional

import requests

from crakhack.errors import ConfigurationMissing, UpstreamGraphQLError, UpstreamHTTPError
from crakhack.settings import Settings


def require_config(settings: Settings, *names: str) -> List[str]:
    """
    Return the values of the named settings in order.
    Raises ConfigurationMissing listing every unset name, before any network call.
    """
    values = [getattr(settings, name, None) for name in names]
    missing = [name for name, value in zip(names, values) if not value]
    if missing:
        print(f"[CLOUDFLARE] Missing configuration: {', '.join(missing)}")
        raise ConfigurationMissing(missing)
    return values


class CloudflareGraphQLClient:
    """Client for the Cloudflare GraphQL Analytics endpoint"""

    def __init__(
        self,
        api_token: str,
        endpoint: str = "https://api.cloudflare.com/client/v4/graphql",
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not api_token:
            raise ConfigurationMissing(["CLOUDFLARE_API_TOKEN"])
        self.endpoint = endpoint
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {api_token}",
            "Content-Type": "application/json",
        })

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[requests.Session] = None) -> "CloudflareGraphQLClient":
        (api_token,) = require_config(settings, "CLOUDFLARE_API_TOKEN")
        return cls(
            api_token,
            endpoint=settings.CLOUDFLARE_GRAPHQL_URL,
            timeout=settings.CLOUDFLARE_TIMEOUT_SECONDS,
            session=session,
        )

    # ============================================================
    # TRANSPORT
    # ============================================================

    def post(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        POST a GraphQL document and return the raw JSON payload.
        GraphQL-level errors are left in the payload for the caller to inspect.

        Raises:
            UpstreamHTTPError on any non-2xx status.
        """
        response = self.session.post(
            self.endpoint,
            json={"query": query, "variables": variables or {}},
            timeout=self.timeout,
        )
        if not response.ok:
            print(f"[CLOUDFLARE ERROR] HTTP {response.status_code} from {self.endpoint}")
            raise UpstreamHTTPError(response.status_code)
        return response.json() or {}

    def execute(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Run a query and return its `data` object.

        Raises:
            UpstreamHTTPError on non-2xx status.
            UpstreamGraphQLError carrying the first reported message.
        """
        payload = self.post(query, variables)
        errors = payload.get("errors") or []
        if errors:
            message = (errors[0] or {}).get("message") or "Cloudflare API error"
            print(f"[CLOUDFLARE ERROR] GraphQL: {message}")
            raise UpstreamGraphQLError(message, errors)
        return payload.get("data") or {}
