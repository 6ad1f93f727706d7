"""Ошибки движка тем.

Каждое исключение несёт HTTP-статус, обработчик ниже отдаёт их в том же
формате, что и остальные JSON-ответы админки: {"ok": false, "message": ...}.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import RequestEntityTooLarge

logger = logging.getLogger(__name__)


class ThemeError(Exception):
    """Базовое исключение для операций с темами."""
    status_code = 500

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ThemeError):
    """Не хватает частей загрузки или идентификатор некорректен."""
    status_code = 400


class UploadTooLarge(ValidationError):
    status_code = 413


class InvalidRequest(ThemeError):
    status_code = 400


class NotFound(ThemeError):
    status_code = 404


class AccessDenied(ThemeError):
    """Выход за пределы базового каталога или чужой пакет."""
    status_code = 403


class ExtractionFailure(ThemeError):
    """Архив повреждён или не является zip."""
    status_code = 422


class IOFailure(ThemeError):
    """Ошибка чтения/записи на диске. Повторно не выполняется."""
    status_code = 500


def register_error_handlers(app):
    @app.errorhandler(ThemeError)
    def handle_theme_error(error):
        if isinstance(error, AccessDenied):
            app.logger.warning('Access denied: %s', error.message)
        elif error.status_code >= 500:
            app.logger.error('%s: %s', error.__class__.__name__, error.message)
        payload = {'ok': False, 'message': error.message}
        if error.details:
            payload['details'] = error.details
        return jsonify(payload), error.status_code

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(error):
        return jsonify(ok=False, message='Upload is too large'), 413
