"""Structured JSON logging with payment/order correlation fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter
from sqlalchemy.engine import make_url

from formations.config import Settings


event_id_ctx: ContextVar[str] = ContextVar("event_id", default="")
payment_intent_id_ctx: ContextVar[str] = ContextVar("payment_intent_id", default="")
order_id_ctx: ContextVar[str] = ContextVar("order_id", default="")


class ContextFilter(logging.Filter):
    """Inject the app name and correlation identifiers into every record."""

    def __init__(self, app_name: str) -> None:
        super().__init__()
        self.app_name = app_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.app_name = self.app_name
        record.event_id = event_id_ctx.get()
        record.payment_intent_id = payment_intent_id_ctx.get()
        record.order_id = order_id_ctx.get()
        return True


def configure_logging(settings: Settings) -> None:
    """Configure the root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ContextFilter(settings.app_name))
    handler.setFormatter(
        JsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(app_name)s "
            "%(event_id)s %(payment_intent_id)s %(order_id)s %(message)s"
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)

    logging.getLogger("stripe").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )


STARTUP_KEYS = (
    "app_env",
    "database_url",
    "stripe_secret_key",
    "stripe_webhook_secret",
    "jwt_secret",
    "allowed_origins",
)


def _safe_setting(settings: Settings, name: str) -> str:
    value = getattr(settings, name)
    if value in (None, ""):
        return "<unset>"
    if any(secret in name for secret in ["key", "secret", "password", "token"]):
        return "<redacted>"
    if name == "database_url":
        return make_url(value).render_as_string(hide_password=True)
    return str(value)


def log_startup_config(settings: Settings) -> None:
    """Log the settings the app was built with, secrets redacted."""

    config = {name: _safe_setting(settings, name) for name in STARTUP_KEYS}
    logging.getLogger("formations").info("startup_config=%s", config)
