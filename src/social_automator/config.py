"""
Application configuration for Social Media Automator.

Settings are read from environment variables (a local ``.env`` file is loaded
first). Values that tests or deployments may change at runtime are read through
small helper functions instead of module constants.
"""

import os
import logging
from typing import Dict, List
from dataclasses import dataclass, field
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Core settings
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
HOST = os.getenv("HOST", "0.0.0.0")
_port = os.getenv("PORT", "3000")
PORT = int(_port) if _port.isdigit() else 3000

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:5173",  # Vite dashboard
    "http://localhost:3000",
    "http://127.0.0.1:5173",
    "http://127.0.0.1:3000",
]

# Environment variables grouped the way startup validation reports them
REQUIRED_VARS: Dict[str, List[str]] = {
    "core": [
        "SUPABASE_URL",
        "SUPABASE_ANON_KEY",
        "SUPABASE_SERVICE_ROLE_KEY",
    ],
}

FEATURE_VARS: Dict[str, List[str]] = {
    "payment": [
        "STRIPE_SECRET_KEY",
        "STRIPE_WEBHOOK_SECRET",
        "RAZORPAY_KEY_ID",
        "RAZORPAY_KEY_SECRET",
    ],
    "oauth": [
        "OAUTH_STATE_SECRET",
    ],
}

OAUTH_CLIENT_VARS = [
    "YOUTUBE_CLIENT_ID", "YOUTUBE_CLIENT_SECRET",
    "LINKEDIN_CLIENT_ID", "LINKEDIN_CLIENT_SECRET",
    "TIKTOK_CLIENT_KEY", "TIKTOK_CLIENT_SECRET",
]


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing at startup."""


@dataclass
class EnvironmentReport:
    """Outcome of an environment validation pass."""
    missing: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


def is_production() -> bool:
    return os.getenv("ENVIRONMENT", ENVIRONMENT) == "production"


def get_allowed_origins() -> List[str]:
    origins = list(DEFAULT_ALLOWED_ORIGINS)
    if extra := os.getenv("ALLOWED_ORIGINS"):
        origins.extend(o.strip() for o in extra.split(",") if o.strip())
    frontend = os.getenv("FRONTEND_URL")
    if frontend and frontend not in origins:
        origins.append(frontend)
    return origins


def get_frontend_url() -> str:
    """Resolve the dashboard base URL used for OAuth redirects."""
    if frontend := os.getenv("FRONTEND_URL"):
        return frontend.rstrip("/")

    if is_production() or os.getenv("RAILWAY_ENVIRONMENT"):
        if domain := os.getenv("RAILWAY_PUBLIC_DOMAIN"):
            return f"https://{domain}"
        return os.getenv("APP_URL", "").rstrip("/")

    return "http://localhost:5173"


def get_admin_emails() -> List[str]:
    raw = os.getenv("ADMIN_EMAILS", "")
    return [e.strip().lower() for e in raw.split(",") if e.strip()]


def validate_environment(raise_on_missing: bool = True) -> EnvironmentReport:
    """
    Check environment variables at startup.

    Required variables abort startup, feature variables only produce warnings
    since the related features degrade gracefully. Validation is skipped when
    ENVIRONMENT is ``test``.

    Args:
        raise_on_missing: Raise ConfigurationError when required vars are missing

    Returns:
        EnvironmentReport with missing variables and warnings
    """
    report = EnvironmentReport()

    if os.getenv("ENVIRONMENT", ENVIRONMENT) == "test":
        return report

    logger.info("Validating environment variables...")

    for category, names in REQUIRED_VARS.items():
        for name in names:
            if not os.getenv(name):
                report.missing.append(f"{category}: {name}")

    for category, names in FEATURE_VARS.items():
        for name in names:
            if not os.getenv(name):
                report.warnings.append(f"{category}: {name} is missing. Related features will be disabled.")

    if not any(os.getenv(name) for name in OAUTH_CLIENT_VARS):
        report.warnings.append("oauth: No OAuth providers configured. Account connections will be limited to manual channels.")

    port = os.getenv("PORT")
    if port and not port.isdigit():
        report.missing.append("core: PORT must be a number")

    for warning in report.warnings:
        logger.warning(f"Configuration warning - {warning}")

    if report.missing:
        for missing in report.missing:
            logger.error(f"Critical configuration missing - {missing}")
        if raise_on_missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(report.missing)}"
            )
    else:
        logger.info("Environment validation passed")

    return report
