# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit tokens. The bearer token is never read from the environment: use /login,
it is stored in <data_dir>/secrets.json (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "OMT_APP_NAME": "App display name (default: om-tasks).",
    "OMT_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # OpenMetadata
    "OMT_API_URL": "OpenMetadata server URL, without /api/v1 (required unless offline).",
    "OMT_WEB_APP_URL": "OpenMetadata web UI URL used for links (default: OMT_API_URL).",
    "OMT_OFFLINE": "Use built-in demo data instead of a server (true/false).",
    "OMT_BOT_NAME": "Bot whose token /bot reads (default: ingestion-bot).",
    # Paths (gitignored)
    "OMT_DATA_DIR": "Local data directory for logs and secrets (default: .local/om-tasks).",
    "OMT_SECRETS_PATH": "Secret store JSON path (default: <data_dir>/secrets.json).",
    # Tuning
    "OMT_PAGE_SIZE": "Tasks per listing page (default: 20).",
    "OMT_RATE_LIMIT_MAX_CONCURRENT": "Requests allowed per release interval (default: 5).",
    "OMT_RATE_LIMIT_INTERVAL_SECONDS": "Seconds before a request slot is released (default: 1.0).",
    "OMT_CACHE_TTL_SECONDS": "Response cache lifetime (default: 300).",
    "OMT_TOKEN_REFRESH_INTERVAL_SECONDS": "Background token refresh period (default: 3600).",
    "OMT_CONNECT_TIMEOUT_SECONDS": "HTTP connect timeout (default: 5).",
    "OMT_READ_TIMEOUT_SECONDS": "HTTP read timeout (default: 30).",
}
