# backend/sporewatch/errors.py
"""Error types shared by the auth and ingestion cores.

Auth errors carry the HTTP status they map to; main.py renders them as
``{"error": message}``. Ingestion errors never leave the pipeline, they are
turned into per-sample report lines.
"""


class AuthError(Exception):
    status_code = 401
    message = "Unauthorized"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(AuthError):
    pass


class SessionExpired(Unauthenticated):
    message = "Session expired"


class Forbidden(AuthError):
    status_code = 403
    message = "Forbidden"


class InvalidCredentials(AuthError):
    message = "Invalid credentials"


class MissingCredentials(AuthError):
    status_code = 400
    message = "Email and password are required"


class RateLimited(AuthError):
    status_code = 429
    message = "Too many login attempts. Please try again later."


class IngestError(Exception):
    pass


class ValidationError(IngestError):
    """A CSV value (coordinates, date, read count) could not be parsed."""


class ConflictError(IngestError):
    """A unique constraint rejected an insert."""


class StoreError(IngestError):
    """Any other failure of a database call."""
