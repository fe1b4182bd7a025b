"""
Returns Module - Errors

The return service raises one of three error kinds. They propagate out of
the service unchanged (rolling back the surrounding transaction); the API
layer turns them into responses in return_exception_handler below.
"""

import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger('returns')


class ReturnServiceError(Exception):
    """Base class for every error raised by the return service."""

    type = 'unexpected_state'
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class NotFoundError(ReturnServiceError):
    """A return, swap, order, line item or shipping option does not exist."""

    type = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND


class NotAllowedError(ReturnServiceError):
    """The command breaks a status transition or business rule."""

    type = 'not_allowed'
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidDataError(ReturnServiceError):
    """The input is structurally invalid (unknown line item, canceled order, ...)."""

    type = 'invalid_data'
    status_code = status.HTTP_400_BAD_REQUEST


def return_exception_handler(exc, context):
    """
    DRF exception handler.

    Return service errors become {"type": ..., "message": ...} with the
    matching status code; everything else goes through DRF's default handler.
    """
    if isinstance(exc, ReturnServiceError):
        view = context.get('view')
        logger.warning(
            f"Return API error in {view.__class__.__name__ if view else 'unknown'}: "
            f"{exc.type} - {exc.message}"
        )
        return Response(
            {'type': exc.type, 'message': exc.message},
            status=exc.status_code,
        )

    return exception_handler(exc, context)
