"""HTTP error taxonomy shared by the game routes.

Route helpers raise :class:`ApiError` for expected business failures; the
handler registered here renders the stable ``{error, message}`` body.
Anything else escaping a route is caught by :func:`handle_unexpected` and
becomes a generic 500 so internals never leak to clients.
"""

import functools

from flask import current_app, jsonify, request

from quizflow import db, REQUEST_ID_HEADER

NOT_FOUND = 'not_found'
INVALID_STATE = 'invalid_state'
INVALID_PAYLOAD = 'invalid_payload'
INVALID_INDEX = 'invalid_index'
UPDATE_FAILED = 'update_failed'
FLOW_NOT_FOUND = 'flow_not_found'
FLOW_UPDATE_FAILED = 'flow_update_failed'
QUESTIONS_FETCH_FAILED = 'questions_fetch_failed'
NO_QUESTIONS = 'no_questions'
NO_QUESTION = 'no_question'
NO_EXPLANATION = 'no_explanation'
CONFLICT = 'conflict'
DATABASE_ERROR = 'database_error'
SERVER_ERROR = 'server_error'


class ApiError(Exception):
    def __init__(self, status, code, message):
        super().__init__(message)
        self.status = status
        self.code = code
        self.message = message


def error_response(status, code, message):
    body = {'error': code, 'message': message}
    request_id = request.headers.get(REQUEST_ID_HEADER)
    if request_id:
        body['requestId'] = request_id
    return jsonify(body), status


def handle_unexpected(failure_message):
    """Turn stray exceptions from a route into ``500 server_error``."""
    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except ApiError:
                raise
            except Exception:
                db.session.rollback()
                current_app.logger.exception(f"[server-error] {request.method} {request.path}: {failure_message}")
                return error_response(500, SERVER_ERROR, failure_message)
        return wrapper
    return decorator


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _api_error(exc):
        return error_response(exc.status, exc.code, exc.message)

    @app.errorhandler(404)
    def _not_found(exc):
        return error_response(404, NOT_FOUND, 'Resource not found')
