"""Handler for POST /registrations."""

import logging

from registration.bootstrap.config import SECURITY_HEADERS
from registration.domain.correlation_id import CorrelationLoggerAdapter
from registration.domain.http_types import HttpRequest, HttpResponse
from registration.domain.registration import InvalidRegistration, parse_registration_form
from registration.domain.response_builders import (
    internal_error_response,
    json_response,
    unprocessable_entity_response,
)
from registration.persistence.store import RegistrationStore, StoreError

REGISTRATION_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("registration.handlers.registrations"), {}
)


async def handle_registration(
    store: RegistrationStore, request: HttpRequest
) -> HttpResponse:
    """Store the submitted registration, ignoring an already known email."""
    try:
        registration = parse_registration_form(request.body)
    except InvalidRegistration as error:
        REGISTRATION_LOGGER.info(
            "Rejected registration form",
            extra={"event": "registration_invalid", "error": str(error)},
        )
        return unprocessable_entity_response(request, str(error), SECURITY_HEADERS)

    try:
        created = await store.insert(registration)
    except StoreError as error:
        REGISTRATION_LOGGER.error(
            "Registration could not be stored",
            extra={"event": "registration_failed", "error_type": type(error).__name__},
            exc_info=True,
        )
        return internal_error_response(SECURITY_HEADERS)

    REGISTRATION_LOGGER.info(
        "Registration stored" if created else "Registration already present",
        extra={
            "event": "registration_created" if created else "registration_duplicate"
        },
    )
    return json_response(registration.to_dict(), request, SECURITY_HEADERS)
