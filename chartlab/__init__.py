import logging
import os
from pathlib import Path

import sentry_sdk
from dotenv import load_dotenv
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

__version__ = "0.4.2"

# Load environment variables early so SENTRY_DSN is available for local/dev runs
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")


def _detect_build_version() -> str:
    explicit = os.getenv("APP_VERSION")
    if explicit:
        return explicit
    build_file = Path(__file__).resolve().parents[1] / "_build_version.txt"
    if build_file.exists():
        try:
            return build_file.read_text(encoding="utf-8").strip()
        except OSError:
            pass
    return __version__


APP_VERSION = _detect_build_version()


def init_sentry(sentry_settings=None) -> bool:
    """Initialise the Sentry SDK from ``SentrySettings``; a no-op without a DSN."""
    if sentry_settings is None:
        from chartlab.settings import get_sentry_settings

        sentry_settings = get_sentry_settings()
    if not sentry_settings.enabled:
        logging.getLogger(__name__).debug("Sentry DSN not set; Sentry disabled")
        return False
    sentry_sdk.init(
        dsn=sentry_settings.dsn,
        integrations=[
            FastApiIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=sentry_settings.traces_sample_rate,
        environment=sentry_settings.environment or os.getenv("ENV", "local"),
        release=APP_VERSION,
    )
    return True


# Initialize Sentry as early as possible (only if DSN is provided)
init_sentry()
