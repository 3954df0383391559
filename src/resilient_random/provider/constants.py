"""Shared constants used by the random-number provider client."""

DEFAULT_ENDPOINT_PATH = "/random"
RESPONSE_BODY_LOG_LIMIT = 1024
