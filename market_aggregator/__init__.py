import logging
import os
from pathlib import Path

import sentry_sdk
from dotenv import load_dotenv
from sentry_sdk.integrations.logging import LoggingIntegration

__version__ = "0.4.0"

# Load environment variables early so credentials and SENTRY_DSN are visible
load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env")

_dsn = os.getenv("SENTRY_DSN")
if _dsn:
    sentry_sdk.init(
        dsn=_dsn,
        integrations=[
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        traces_sample_rate=0.0,
        environment=os.getenv("APP_ENV", "prod"),
        release=os.getenv("APP_VERSION") or __version__,
    )
else:
    logging.getLogger(__name__).debug("Sentry DSN not set; Sentry disabled")
