"""Passwordless Auth — configuration loaded from environment."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── One-time codes ────────────────────────────────────
    otp_code_length: int = 6
    otp_expiry_seconds: int = 60
    otp_max_attempts: int = 3
    countdown_tick_ms: int = 1000

    # ── Simulated round-trips ─────────────────────────────
    request_latency_ms: int = 500
    verify_latency_ms: int = 300
    request_timeout_seconds: float = 5.0

    # ── Event sink ────────────────────────────────────────
    event_sink_url: str = ""
    event_sink_timeout_seconds: float = 5.0

    # ── App ───────────────────────────────────────────────
    app_name: str = "Passwordless Auth"
    debug: bool = True

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
