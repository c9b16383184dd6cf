"""
Domain errors and the DRF exception handler.

Every error leaves the API in one envelope:

    {"success": false, "error": {"code": "...", "message": "...", "details": ...}}

Services raise the APIException subclasses below directly; views never
build error responses by hand.
"""
from rest_framework import exceptions, status
from rest_framework.response import Response
from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.db import DatabaseError, IntegrityError
from django.http import Http404
import logging

logger = logging.getLogger(__name__)


class Unauthenticated(exceptions.NotAuthenticated):
    default_detail = 'Authentication credentials were not provided or are invalid.'
    default_code = 'unauthorized'


class Forbidden(exceptions.PermissionDenied):
    default_detail = 'You can only modify your own content.'
    default_code = 'forbidden'


class NotFound(exceptions.NotFound):
    default_detail = 'Resource not found.'
    default_code = 'not_found'


class ValidationError(exceptions.APIException):
    """Single-message validation failure raised from service code."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid input.'
    default_code = 'validation_error'


class InvalidVote(ValidationError):
    default_detail = 'Vote must be -1, 0, or 1.'
    default_code = 'invalid_vote'


class SelfVote(ValidationError):
    default_detail = 'You cannot vote on your own review.'
    default_code = 'self_vote'


class Conflict(exceptions.APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource already exists.'
    default_code = 'conflict'


class EditWindowExpired(exceptions.PermissionDenied):
    default_detail = 'The edit window for this content has expired.'
    default_code = 'edit_window_expired'


class InfrastructureError(exceptions.APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = 'The data store is unavailable. Try again later.'
    default_code = 'infrastructure_error'


# DRF's own exceptions keep their codes except where the domain name differs
_CODE_OVERRIDES = {
    'not_authenticated': 'unauthorized',
    'authentication_failed': 'unauthorized',
    'permission_denied': 'forbidden',
    'invalid': 'validation_error',
    'parse_error': 'validation_error',
}


def _error_code(exc):
    if isinstance(exc, exceptions.ValidationError):
        return 'validation_error'
    code = getattr(exc, 'default_code', None) or 'error'
    if isinstance(exc.detail, str) and getattr(exc.detail, 'code', None):
        code = exc.detail.code
    return _CODE_OVERRIDES.get(code, code)


def _envelope(code, message, details=None):
    error = {'code': code, 'message': message}
    if details is not None:
        error['details'] = details
    return {'success': False, 'error': error}


def custom_exception_handler(exc, context):
    """
    Custom exception handler that:
    1. Renders DRF and domain exceptions in one envelope
    2. Converts database exceptions to Conflict / InfrastructureError
    3. Logs and masks anything unexpected
    """
    # rest_framework.views loads DEFAULT_AUTHENTICATION_CLASSES, which import
    # this module; importing it at module level is circular.
    from rest_framework.views import exception_handler

    if isinstance(exc, Http404):
        exc = NotFound()
    elif isinstance(exc, DjangoPermissionDenied):
        exc = Forbidden()
    elif isinstance(exc, IntegrityError):
        logger.warning(f"IntegrityError: {exc}")
        exc = Conflict('Data integrity error. This may be a duplicate entry.')
    elif isinstance(exc, DatabaseError):
        logger.error(f"Database error: {exc}")
        exc = InfrastructureError()

    response = exception_handler(exc, context)

    if response is not None:
        if isinstance(exc.detail, (dict, list)):
            message, details = 'Invalid input.', response.data
        else:
            message, details = str(exc.detail), None
        response.data = _envelope(_error_code(exc), message, details)
        return response

    logger.exception(f"Unhandled exception: {exc}")
    return Response(
        _envelope('server_error', 'An unexpected error occurred.'),
        status=status.HTTP_500_INTERNAL_SERVER_ERROR
    )
