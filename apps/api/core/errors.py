"""
Storage and authentication error taxonomy.

Shared by the server and the storage client, so this module has no web-framework
dependency. `core.exceptions` maps these onto HTTP responses; the storage client
maps HTTP responses back onto them.

"No record for this date" is never an error: lookups return None.
"""
from typing import Optional


class StorageError(Exception):
    """Base class for persistence-layer failures."""

    error_code = "STORAGE_ERROR"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.error_code
        super().__init__(self.detail)


class ConnectionUnavailable(StorageError):
    """Remote store unreachable or reconnect cooldown active."""

    error_code = "CONNECTION_UNAVAILABLE"


class StoreUnavailable(ConnectionUnavailable):
    """Remote store unavailable for a write."""

    error_code = "STORE_UNAVAILABLE"


class ClientSideForbidden(StorageError):
    """Server-side connection requested from a client execution context."""

    error_code = "CLIENT_SIDE_FORBIDDEN"


class LocalStorageUnavailable(StorageError):
    """No device-local storage in this execution context."""

    error_code = "LOCAL_STORAGE_UNAVAILABLE"


class StorageFailure(StorageError):
    """The action did not persist: remote and local storage both failed."""

    error_code = "STORAGE_FAILURE"


class RemoteRequestError(StorageError):
    """The server answered with an unexpected status."""

    error_code = "REMOTE_REQUEST_ERROR"

    def __init__(self, status_code: int, detail: Optional[str] = None):
        self.status_code = status_code
        super().__init__(detail or f"Unexpected response status {status_code}")


class AuthError(Exception):
    """Base class for user-facing authentication failures."""

    error_code = "AUTH_ERROR"

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.error_code
        super().__init__(self.detail)


class UsernameTaken(AuthError):
    """Username already exists."""

    error_code = "USERNAME_TAKEN"


class InvalidCredentials(AuthError):
    """Invalid username or password."""

    error_code = "INVALID_CREDENTIALS"


class InvalidSession(AuthError):
    """Session is invalid or has expired. Please log in again."""

    error_code = "INVALID_SESSION"


ERRORS_BY_CODE = {
    cls.error_code: cls
    for cls in (
        ConnectionUnavailable,
        StoreUnavailable,
        ClientSideForbidden,
        StorageFailure,
        UsernameTaken,
        InvalidCredentials,
        InvalidSession,
    )
}
