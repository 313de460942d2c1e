"""Error taxonomy shared by the services and the HTTP layer.

Services raise these; ``main`` installs a handler that renders them as
``{"error": message}`` with the matching status code.
"""
from __future__ import annotations


class AppError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, detail: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.detail = detail


class InvalidInput(AppError):
    status_code = 400
    default_message = "Invalid input"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


class NoExchangeableLevels(AppError):
    """Declined exchange: nothing new since the last watermark."""
    status_code = 400
    default_message = "No new levels to exchange! You need to level up more."


class AlreadyImported(AppError):
    status_code = 409
    default_message = "You have already imported your levels from MEE6. Import can only be done once."


class ExchangeConflict(AppError):
    status_code = 409
    default_message = "Level state changed during the exchange, please retry."


class StorageUnavailable(AppError):
    status_code = 500
    default_message = "Storage unavailable"
