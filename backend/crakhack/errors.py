"""
Error taxonomy shared by the screener gate and the analytics layer.
"""

from typing import Any, Dict, List, Optional


class ConfigurationMissing(Exception):
    """Raised when required environment configuration is absent"""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(f"Missing env var: {', '.join(self.missing)}")


class UpstreamHTTPError(Exception):
    """Raised when the Cloudflare API answers with a non-2xx status"""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Cloudflare API error: {status_code}")


class UpstreamGraphQLError(Exception):
    """Raised when the GraphQL response body carries errors"""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(message)


class SchemaFieldUnsupported(Exception):
    """A dimension field is unknown to the provider's schema"""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Unsupported dimension field: {field}")


class AuthenticationFailed(Exception):
    """Wrong or missing screener password"""
    pass
