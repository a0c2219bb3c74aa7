# audit_log/middleware.py

import threading
import uuid

import structlog

_thread_locals = threading.local()

class RequestUserMiddleware:
    """
    Middleware to store the current request's user in a thread-safe way.
    This allows us to access the 'actor' in the signal handler.

    The request id and user id are also bound to structlog's context so
    every log line written while serving the request carries them.
    """
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        user = getattr(request, 'user', None)
        _thread_locals.user = user

        request_id = request.headers.get('X-Request-ID') or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            user_id=user.pk if user is not None and user.is_authenticated else None,
        )
        try:
            response = self.get_response(request)
        finally:
            _thread_locals.user = None
            structlog.contextvars.clear_contextvars()
        response['X-Request-ID'] = request_id
        return response

def get_current_user():
    """
    Helper function to retrieve the user from thread-local storage.
    """
    return getattr(_thread_locals, 'user', None)
