"""
Workflow error taxonomy and the unified API exception handler.

Services raise one of the :class:`WorkflowError` subclasses below; the
REST framework handler turns every error into the same envelope::

    {'ok': False, 'error': {'code': ..., 'message': ...}}
"""
import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    code = 'workflow_error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'Workflow error'

    def __init__(self, message=None, **detail):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class Unauthorized(WorkflowError):
    code = 'unauthorized'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You are not allowed to perform this action'


class InvalidTransition(WorkflowError):
    code = 'invalid_transition'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Status transition is not allowed'


class InsufficientStock(WorkflowError):
    code = 'insufficient_stock'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Not enough stock to dispense'


class NotFound(WorkflowError):
    code = 'not_found'
    status_code = status.HTTP_404_NOT_FOUND
    default_message = 'Not found'


class AlreadyBilled(WorkflowError):
    code = 'already_billed'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Appointment has already been billed'


class AlreadyDispensed(WorkflowError):
    code = 'already_dispensed'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Prescription has already been dispensed'


class AlreadyLinked(WorkflowError):
    code = 'already_linked'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'A family link already exists or is pending'


class PersistenceFailure(WorkflowError):
    code = 'persistence_failure'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'Could not save changes'


class ConsultationSaveFailed(PersistenceFailure):
    code = 'consultation_save_failed'
    default_message = 'Consultation could not be saved; nothing was recorded'


def error_payload(code, message, **extra):
    error = {'code': code, 'message': message}
    if extra:
        error.update(extra)
    return {'ok': False, 'error': error}


def api_exception_handler(exc, context):
    if isinstance(exc, WorkflowError):
        return Response(error_payload(exc.code, exc.message, **exc.detail), status=exc.status_code)
    resp = drf_exception_handler(exc, context)
    if resp is None:
        logger.exception('Unhandled error in %s', context.get('view'))
        return Response(error_payload('server_error', str(exc)), status=500)
    # normalize response
    if isinstance(exc, ValidationError):
        return Response(error_payload('invalid', resp.data), status=resp.status_code)
    detail = None
    if isinstance(resp.data, dict):
        detail = resp.data.get('detail') or resp.data
    else:
        detail = str(resp.data)
    return Response(error_payload('api_error', detail), status=resp.status_code)
