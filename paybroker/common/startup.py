"""Startup logging of the effective broker configuration.

Values come from the loaded `BrokerSettings`, so anything read from `.env`
shows up exactly as the process will use it.
"""

from typing import Any

from paybroker.common.config import BrokerSettings
from paybroker.common.logging import logger


SECRET_FIELDS = frozenset({"api_key", "gateway_client_secret"})


def effective_config(config: BrokerSettings) -> dict[str, Any]:
    """Dump settings with credential fields masked."""

    values = config.model_dump()
    for name in SECRET_FIELDS:
        values[name] = "<redacted>" if values.get(name) else "<unset>"
    return values


def log_startup_config(config: BrokerSettings) -> None:
    logger.info("startup_config=%s", effective_config(config))
