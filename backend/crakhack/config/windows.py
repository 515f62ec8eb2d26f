"""
Canonical configuration for analytics windows and breakdown limits.
Centralizing these values keeps the API clamp, the chunker and the merge in step.
"""

# Lookback requested by the dashboard / API
DEFAULT_LOOKBACK_DAYS = 7
MIN_LOOKBACK_DAYS = 1
MAX_LOOKBACK_DAYS = 90

# Cloudflare rejects httpRequestsAdaptiveGroups ranges wider than ~24h
MAX_CHUNK_HOURS = 24
RECENT_WINDOW_HOURS = 24

# Top-N after merging chunks
GEO_BREAKDOWN_LIMIT = 50     # countries, cities
CLIENT_BREAKDOWN_LIMIT = 20  # browsers, operating systems

# Per-query row limits
SERIES_ROW_LIMIT = 200
R2_OPERATIONS_LIMIT = 1000
R2_TOP_COUNTRIES_LIMIT = 25

UNKNOWN_NAME = "Unknown"
