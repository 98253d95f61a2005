"""Upload retry constants."""

# Retry configuration constants
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_INTERVAL = 51  # milliseconds
DEFAULT_REGION = "us-west-2"
DEFAULT_MAX_WORKERS = 8

# Request defaults
DEFAULT_CONTENT_TYPE = "application/octet-stream"
SUCCESS_STATUS_CODE = 200
