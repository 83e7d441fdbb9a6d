"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="campus-health", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/campus_health",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Policy ==========
    sla_policy_path: Path = Field(
        default=Path("sla_policy.yaml"),
        description="Path to SLA policy YAML file"
    )
    sla_sweep_enabled: bool = Field(
        default=True,
        description="Run the periodic SLA breach sweep in the background"
    )
    sla_sweep_interval: int = Field(
        default=60,
        description="Seconds between SLA sweeps",
        ge=10
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for breach notifications"
    )
    slack_channel: str = Field(
        default="#campus-operations",
        description="Slack channel for breach notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class Severity(str):
    """Issue severity levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class IssueStatus(str):
    """
    Known issue statuses.

    Status is free-form in storage; only RESOLVED is distinguished by the
    scoring engine. Everything else counts as open.
    """
    OPEN = "open"
    ACTIONED = "actioned"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class SLAStatus(str):
    """Final or running SLA assessment of an issue."""
    WITHIN_SLA = "within_sla"
    MET = "met"
    BREACHED = "breached"


class Trend(str):
    """Direction of the health score against the previous snapshot."""
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class AuditAction(str):
    """Audit trail actions."""
    ISSUE_CREATED = "ISSUE_CREATED"
    STATUS_UPDATED = "STATUS_UPDATED"
    ISSUE_RESOLVED = "ISSUE_RESOLVED"
    EXTERNAL_ESCALATION = "EXTERNAL_ESCALATION"


class EscalationStatus(str):
    """State of an escalation to an outside authority."""
    ACTIVE = "active"


class EscalationLevel(str):
    """Outside authorities an issue can be forwarded to."""
    DISTRICT = "district"
    UNIVERSITY = "university"


ESCALATION_AUTHORITIES = {
    EscalationLevel.DISTRICT: {"name": "District Education Officer", "level": EscalationLevel.DISTRICT},
    EscalationLevel.UNIVERSITY: {"name": "University Senate", "level": EscalationLevel.UNIVERSITY},
}
ESCALATION_ROLE = "admin"


SYSTEM_ACTOR_ID = "SYSTEM_SLA_ENGINE"
SYSTEM_ACTOR_ROLE = "system"


# ========== Lists for validation ==========

VALID_SEVERITIES = [
    Severity.CRITICAL, Severity.HIGH,
    Severity.MEDIUM, Severity.LOW
]
MANUAL_STATUS_TRANSITIONS = [IssueStatus.ESCALATED, IssueStatus.ACTIONED]
