"""Application lifecycle event handlers."""
import logging

from fastapi import FastAPI

from api.settings import settings
from backend.services.relay.config import relay_config_from_settings
from backend.services.relay.errors import ConfigurationError


logger = logging.getLogger(__name__)


def setup_lifecycle_events(app: FastAPI) -> None:
    """
    Configure application lifecycle events.

    Args:
        app: The FastAPI application instance
    """
    @app.on_event("startup")
    async def startup_event():
        """Validate the relay configuration so problems show up at boot, not at the first run."""
        try:
            config = relay_config_from_settings(settings.resolved())
        except ConfigurationError as exc:
            logger.error("Relay configuration invalid; /relay endpoints will return 503: %s", exc)
            return

        logger.info(
            "Relay configured source=%s:%s%s destination=%s%s suffix=%s keep=%s",
            config.source.host,
            config.source.port,
            config.source.remote_dir,
            config.destination.base_url,
            config.destination.remote_root,
            config.artifact_suffix,
            config.retention_keep,
        )
