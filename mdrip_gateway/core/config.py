import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Settings:
    # Service
    SERVICE_NAME: str = os.getenv("SERVICE_NAME", "mdrip-mcp")
    SERVICE_VERSION: str = os.getenv("SERVICE_VERSION", "0.1.0")
    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Conversion engine
    MCP_USER_AGENT: str = os.getenv("MCP_USER_AGENT", "mdrip-mcp/0.1.0")
    API_USER_AGENT: str = os.getenv("API_USER_AGENT", "mdrip-api/0.1.0")
    DEFAULT_TIMEOUT_MS: int = int(os.getenv("DEFAULT_TIMEOUT_MS", "30000"))
    MIN_TOOL_TIMEOUT_MS: int = int(os.getenv("MIN_TOOL_TIMEOUT_MS", "1000"))
    MAX_TOOL_TIMEOUT_MS: int = int(os.getenv("MAX_TOOL_TIMEOUT_MS", "120000"))
    MAX_BATCH_URLS: int = int(os.getenv("MAX_BATCH_URLS", "10"))

    # Rate limiting (requests per window, per identity)
    RATE_LIMIT_WINDOW_SECONDS: int = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    RATE_LIMIT_TRANSPORT: int = int(os.getenv("RATE_LIMIT_TRANSPORT", "120"))
    RATE_LIMIT_API: int = int(os.getenv("RATE_LIMIT_API", "60"))
    RATE_LIMIT_API_BATCH: int = int(os.getenv("RATE_LIMIT_API_BATCH", "10"))

    # Caller identity
    IDENTITY_KEY_HEADER: str = os.getenv("IDENTITY_KEY_HEADER", "x-api-key")
    IDENTITY_MAX_LENGTH: int = int(os.getenv("IDENTITY_MAX_LENGTH", "128"))

    # MCP transports
    MCP_JSON_RESPONSE: bool = _flag("MCP_JSON_RESPONSE", "1")

settings = Settings()
