"""Backend and orchestration configuration."""

import os

# Backend API configuration
API_URL = os.environ.get("GOALPILOT_API_URL", "http://127.0.0.1:8888")
API_TOKEN_ENV = "GOALPILOT_API_TOKEN"

# Development default; production deployments must set GOALPILOT_API_TOKEN
PLACEHOLDER_TOKEN = "test-token-abc123"

# Timeouts in seconds
REQUEST_TIMEOUT = float(os.environ.get("GOALPILOT_REQUEST_TIMEOUT", "10"))
STREAM_TIMEOUT = float(os.environ.get("GOALPILOT_STREAM_TIMEOUT", "300"))

# Decoded characters buffered before a streamed chunk is handed to the sink
FLUSH_THRESHOLD = int(os.environ.get("GOALPILOT_FLUSH_THRESHOLD", "50"))

# Model defaults
DEFAULT_MODEL = os.environ.get("GOALPILOT_MODEL", "gpt-3.5-turbo")
DEFAULT_VISION_MODEL = os.environ.get("GOALPILOT_VISION_MODEL", "gpt-4o-mini")
DEFAULT_TEMPERATURE = 0.8
DEFAULT_MAX_TOKENS = 1250
DEFAULT_LANGUAGE = "English"

# Delay between task-added messages (0 disables pacing)
MESSAGE_DELAY = float(os.environ.get("GOALPILOT_MESSAGE_DELAY", "0"))

# Backend routes
ROUTES = {
    "start": "/api/agent/start",
    "analyze": "/api/agent/analyze",
    "execute": "/api/agent/execute",
    "create": "/api/agent/create",
    "summarize": "/api/agent/summarize",
    "chat": "/api/agent/chat",
    "upload_image": "/api/upload/upload-image",
}

UPLOAD_SUCCESS_TEXT = "Image uploaded successfully"


def get_api_token() -> str:
    """Return the stored credential, or the placeholder when none is set.

    Read on every call so a token rotated in the environment is picked up
    by the next request.
    """
    return os.environ.get(API_TOKEN_ENV) or PLACEHOLDER_TOKEN
