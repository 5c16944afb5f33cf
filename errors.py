"""Exception taxonomy and the JSON error handlers that map it onto HTTP."""

import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base class for errors that carry their own HTTP status."""
    status_code = 500
    message = 'Internal server error'

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        if message:
            self.message = message

    def to_dict(self) -> dict:
        return {'message': self.message}


class ValidationError(AppError):
    """Bad request input. Carries field-level detail."""
    status_code = 400
    message = 'Validation failed'

    def __init__(self, errors: list, message: str = None):
        super().__init__(message)
        self.errors = errors

    def to_dict(self) -> dict:
        return {'message': self.message, 'errors': self.errors}


class AuthError(AppError):
    status_code = 401
    message = 'Access token required'

    def __init__(self, message: str = None, status_code: int = None):
        super().__init__(message)
        if status_code:
            self.status_code = status_code


class NotFoundOrForbidden(AppError):
    """Raised alike for missing sessions and sessions owned by someone else."""
    status_code = 404
    message = 'Interview session not found'


class SessionAlreadyCompleted(AppError):
    status_code = 409
    message = 'Interview session is already completed'


class ExtractionError(AppError):
    """Resume text could not be extracted; the start request fails."""
    status_code = 500
    message = 'Failed to extract text from file'


class UnsupportedFileType(ExtractionError):
    message = 'Unsupported file type'


class ExtractionFailed(ExtractionError):
    pass


class CollaboratorError(Exception):
    """AI collaborator failure. Always recovered inside the engine."""


class CollaboratorUnavailable(CollaboratorError):
    pass


class InvalidResponse(CollaboratorError):
    pass


def _error_detail(app, error) -> str:
    if app.config.get('APP_ENV') == 'development':
        return str(error)
    return 'Internal server error'


def register_error_handlers(app):
    """Attach JSON error handlers to the Flask app."""

    @app.errorhandler(ExtractionError)
    def handle_extraction_error(error):
        logger.error('Resume extraction failed: %s', error)
        return jsonify({
            'message': 'Failed to start interview session',
            'error': _error_detail(app, error),
        }), error.status_code

    @app.errorhandler(AppError)
    def handle_app_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({'message': error.description}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.error('Unhandled error: %s', error, exc_info=True)
        return jsonify({
            'message': 'Something went wrong',
            'error': _error_detail(app, error),
        }), 500
