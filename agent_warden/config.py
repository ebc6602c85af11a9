"""Application settings loaded from environment variables."""

from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """agent-warden configuration.

    Every threshold and feature flag the pipeline consults lives here so the
    policy can be tuned without a rebuild. All settings can be overridden via
    environment variables prefixed with ``WARDEN_`` (e.g.
    ``WARDEN_AUTO_APPROVE_THRESHOLD``).
    """

    # Trust scoring
    auto_approve_threshold: float = 5.0
    recent_incident_hours: float = 24.0
    trust_half_life_days: float = 30.0
    failure_weight: float = 3.0

    # Anomaly detection
    rate_spike_tolerance: float = 3.0
    baseline_window_hours: float = 24.0
    baseline_alpha: float = 0.1
    baseline_update_interval_minutes: int = 60
    anomaly_auto_block: bool = True
    anomaly_auto_pause: bool = True
    pattern_file: Path | None = None

    # Content inspection
    sanitizer_strict_mode: bool = True

    # Optional LLM risk classification
    enable_risk_analysis: bool = False
    risk_api_key: str | None = None
    risk_model: str = "claude-sonnet-4-20250514"
    risk_timeout_seconds: float = 5.0

    # Audit forwarding and alerting
    audit_webhook_url: str | None = None
    webhook_timeout_seconds: float = 5.0
    risk_report_webhook_url: str | None = None
    risk_alert_threshold: int = 5

    # Storage
    data_dir: Path = Path(".data")
    audit_dir: Path = Path(".audit")

    # Approvals
    approval_ttl_minutes: int = 30

    # API
    api_title: str = "agent-warden"
    cors_origins: list[str] = ["http://localhost:5173"]
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    model_config = {"env_prefix": "WARDEN_", "case_sensitive": False}


settings = Settings()
