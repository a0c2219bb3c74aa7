# appointments/api.py
"""
Helpers shared by the JSON views: body parsing, error envelopes and the
mapping from scheduling errors to HTTP status codes.
"""

import json
from functools import wraps

import structlog
from django.http import JsonResponse, QueryDict

from .exceptions import ErrorKind, SchedulingError

logger = structlog.get_logger(__name__)

STATUS_CODES = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.UNAVAILABLE: 503,
}


class BadPayload(Exception):
    pass


def json_error(error, message, status, **extra):
    return JsonResponse({'success': False, 'error': error, 'message': message, **extra}, status=status)


def json_ok(data=None, status=200, message=None):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    return JsonResponse(body, status=status)


def form_errors(form):
    return json_error(
        ErrorKind.INVALID_REQUEST.value,
        "Invalid request data",
        400,
        errors={field: [str(e) for e in errors] for field, errors in form.errors.items()},
    )


def request_data(request):
    """Form-encoded or JSON body as a QueryDict-like mapping for a Django form."""
    if request.content_type == 'application/json':
        try:
            payload = json.loads(request.body or b'{}')
        except (ValueError, UnicodeDecodeError):
            raise BadPayload("Request body is not valid JSON") from None
        if not isinstance(payload, dict):
            raise BadPayload("Request body must be a JSON object")
        data = QueryDict(mutable=True)
        for key, value in payload.items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = 'true' if value else ''
            data[key] = str(value)
        return data
    return request.POST


def scheduling_errors(view):
    """Turn engine errors raised inside `view` into the JSON error envelope."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except BadPayload as exc:
            return json_error(ErrorKind.INVALID_REQUEST.value, str(exc), 400)
        except SchedulingError as exc:
            logger.info('request_refused', path=request.path, error=exc.kind.value, message=exc.message)
            return json_error(exc.kind.value, exc.message, STATUS_CODES[exc.kind])
    return wrapper


def permission_denied(request, exception=None):
    return json_error(ErrorKind.FORBIDDEN.value, "You do not have permission to perform this action.", 403)
