"""Core configuration settings - server, HTTP, CORS, and logging."""

from pydantic import BaseModel, Field, field_validator


# === Server Configuration ===


class ServerSettings(BaseModel):
    """Server-specific configuration settings."""

    host: str = Field(
        default="127.0.0.1",
        description="Server host address",
    )

    port: int = Field(
        default=3001,
        description="Server port number",
        ge=1,
        le=65535,
    )

    workers: int = Field(
        default=1,
        description="Number of worker processes",
        ge=1,
        le=32,
    )

    reload: bool = Field(
        default=False,
        description="Enable auto-reload for development",
    )

    debug_errors: bool = Field(
        default=False,
        description="Include exception details in error responses (development only)",
    )


# === HTTP Configuration ===


class HTTPSettings(BaseModel):
    """HTTP client configuration settings for upstream provider calls."""

    request_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for non-streaming upstream requests",
        gt=0,
    )

    stream_read_timeout: float = Field(
        default=240.0,
        description="Read timeout in seconds for streaming upstream responses",
        gt=0,
    )

    compression_enabled: bool = Field(
        default=True,
        description="Enable compression for provider requests (Accept-Encoding header)",
    )

    accept_encoding: str = Field(
        default="gzip, deflate",
        description="Accept-Encoding header value when compression is enabled",
    )

    http2: bool = Field(
        default=False,
        description="Enable HTTP/2 for upstream connections",
    )


# === CORS Configuration ===


class CORSSettings(BaseModel):
    """CORS-specific configuration settings."""

    origins: list[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        description="CORS allowed origins (avoid using '*' for security)",
    )

    credentials: bool = Field(
        default=True,
        description="CORS allow credentials",
    )

    methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        description="CORS allowed methods",
    )

    headers: list[str] = Field(
        default_factory=lambda: [
            "Content-Type",
            "Authorization",
            "X-Requested-With",
            "Cache-Control",
        ],
        description="CORS allowed headers",
    )

    @field_validator("origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    @field_validator("methods", mode="before")
    @classmethod
    def validate_cors_methods(cls, v: str | list[str]) -> list[str]:
        """Parse CORS methods from string or list."""
        if isinstance(v, str):
            return [method.strip().upper() for method in v.split(",") if method.strip()]
        return [method.upper() for method in v]


# === Logging Configuration ===


class LoggingSettings(BaseModel):
    """Application logging plus chat event recording."""

    level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    format: str = Field(
        default="auto",
        description="Logging output format: 'rich' for development, 'json' for production, 'auto' for automatic selection",
    )

    file: str | None = Field(
        default=None,
        description="Path to JSON log file. If specified, logs will be written to this file in JSON format",
    )

    show_path: bool = Field(
        default=False,
        description="Whether to show module path in logs",
    )

    console_width: int | None = Field(
        default=None,
        description="Optional console width override for Rich output",
    )

    # === Chat event recording ===
    enabled: bool = Field(
        default=True,
        description="Record chat completions and stream events to daily JSON-lines files",
    )

    dir: str = Field(
        default="log",
        description="Directory for chat-YYYYMMDD.log files",
    )

    record_normal: bool = Field(
        default=True,
        description="Record non-streaming completions",
    )

    record_stream: bool = Field(
        default=True,
        description="Record streaming relay events",
    )

    include_raw: bool = Field(
        default=True,
        description="Include the raw upstream response in completion records",
    )

    include_normalized: bool = Field(
        default=True,
        description="Include the normalized response in completion records",
    )

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        upper_v = v.upper()
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if upper_v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper_v

    @field_validator("format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate and normalize log format."""
        lower_v = v.lower()
        valid_formats = ["auto", "rich", "json"]
        if lower_v not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return lower_v
