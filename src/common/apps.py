import structlog
from django.apps import AppConfig


class CommonConfig(AppConfig):
    """Configuration for the common app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "common"

    def ready(self) -> None:
        """Log the effective service configuration once Django is loaded."""
        from django.conf import settings

        logger = structlog.get_logger(__name__)
        logger.debug(
            "service_ready",
            version=settings.VERSION,
            environment=settings.DEPLOYMENT_ENVIRONMENT,
        )
