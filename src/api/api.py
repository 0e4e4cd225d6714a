from django.conf import settings
from django.http import HttpRequest
from ninja.errors import ValidationError as NinjaValidationError
from ninja_extra import NinjaExtraAPI

from common.schema import ResponseOk, VersionResponse
from common.throttling import AnonDefaultThrottle
from wallet.controllers import PassController, apple_router
from wallet.exceptions import (
    PassNotFoundError,
    PassServiceError,
    PassStorageError,
    PassUnauthorizedError,
    PassValidationError,
)

from .exception_handlers import (
    handle_bad_request,
    handle_general_exception,
    handle_pass_not_found_error,
    handle_pass_storage_error,
    handle_pass_unauthorized_error,
    handle_pass_validation_error,
    handle_request_validation_error,
)

api = NinjaExtraAPI(
    title=f"{settings.SITE_NAME} API",
    docs_url="/docs",
    version=settings.VERSION,
    description=f"{settings.SITE_NAME} wallet pass web service {settings.VERSION}",
    app_name=f"passhub-api-{settings.VERSION}",
    urls_namespace="api",
    servers=[
        {"url": settings.PASSKIT_WEB_SERVICE_URL, "description": settings.SITE_NAME},
    ],
    throttle=[AnonDefaultThrottle()],
)


@api.get("/version", tags=["Version"], response={200: VersionResponse})
def version(request: HttpRequest) -> tuple[int, VersionResponse]:
    """Get the API version.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, VersionResponse(version=settings.VERSION)


@api.get("/healthcheck", tags=["Healthcheck"], response={200: ResponseOk})
def healthcheck(request: HttpRequest) -> tuple[int, ResponseOk]:
    """Check the health of the API.

    Args:
        request: The incoming HTTP request.

    Returns:
        The response status code and message.
    """
    return 200, ResponseOk()


api.register_controllers(PassController)
api.add_router("", apple_router)

EXCEPTION_HANDLERS = {
    Exception: handle_general_exception,
    NinjaValidationError: handle_request_validation_error,
    PassServiceError: handle_bad_request,
    PassValidationError: handle_pass_validation_error,
    PassNotFoundError: handle_pass_not_found_error,
    PassUnauthorizedError: handle_pass_unauthorized_error,
    PassStorageError: handle_pass_storage_error,
}

for exc, handler in EXCEPTION_HANDLERS.items():
    api.add_exception_handler(exc, handler)
