"""Centralized defaults and built-in target environments."""

# Named target environments. Each entry provides the UI base URL and the
# REST API base URL that relative endpoints are joined onto.
ENVIRONMENTS = {
    "parabank": {
        "base_url": "https://parabank.parasoft.com/parabank",
        "api_base_url": "https://parabank.parasoft.com/parabank/services/bank",
    },
    "contactlist": {
        "base_url": "https://thinking-tester-contact-list.herokuapp.com",
        "api_base_url": "https://thinking-tester-contact-list.herokuapp.com",
    },
}

DEFAULT_ENVIRONMENT = "parabank"

# Environment variable selecting the target environment
ENVIRONMENT_VAR = "PROMPTQA_ENV"

# Default viewport
DEFAULT_VIEWPORT = (1280, 720)

# Timeouts
DEFAULT_ACTION_TIMEOUT_MS = 30_000  # page waits and assertions
DEFAULT_API_TIMEOUT = 30  # seconds, per HTTP request

# Accept header sent with every API request (Parabank answers XML unless asked)
API_ACCEPT_HEADER = "application/json, application/xml, text/xml, */*"
