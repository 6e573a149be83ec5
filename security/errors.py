class AuthError(Exception):
    """Base class for every failure raised by the account core."""


class InvalidArgument(AuthError, ValueError):
    """A required argument was None, empty or malformed. Raised before any I/O."""


class PreconditionFailed(AuthError):
    """The operation does not apply to the record in its current state."""


class TotpAlreadyEnabled(PreconditionFailed):
    pass


class TotpNotEnabled(PreconditionFailed):
    pass


class StorageError(AuthError):
    """The backing store rejected the operation."""


class DuplicateRecord(StorageError):
    """A unique constraint was violated (username, email, used TOTP code...)."""


class StorageTimeout(StorageError):
    """The backing store did not answer within the configured timeout."""


def check_argument(condition, message: str):
    if not condition:
        raise InvalidArgument(message)


def check_not_empty(value, name: str):
    if value is None:
        raise InvalidArgument(f"null {name}")
    if isinstance(value, str) and not value:
        raise InvalidArgument(f"empty {name}")
    return value


def check_persisted(record, name: str):
    """
    Ensures ``record`` is present and has been assigned an id by the store.
    """
    if record is None:
        raise InvalidArgument(f"null {name}")
    if getattr(record, "id", None) is None:
        raise PreconditionFailed(f"undefined {name}")
    return record
