"""Exceptions raised by database and file-format operations."""


class BoltError(Exception):
    """Base class for every error raised by the package."""

    message = "bolt error"

    def __init__(self, message=None):
        super().__init__(self.message if message is None else message)


# Errors raised when opening or calling methods on a database.


class DatabaseNotOpenError(BoltError):
    """A database was used before it was opened or after it was closed."""

    message = "database not open"


class DatabaseOpenError(BoltError):
    """A database that is already open was opened again."""

    message = "database already open"


class InvalidDatabaseError(BoltError):
    """Both meta pages are invalid; usually the file is not a database."""

    message = "invalid database"


class InvalidMappingError(BoltError):
    """The database file could not be mapped."""

    message = "database isn't correctly mapped"


class VersionMismatchError(BoltError):
    """The data file was written with a different format version."""

    message = "version mismatch"


class ChecksumError(BoltError):
    """A meta page checksum does not match its contents."""

    message = "checksum error"


class TimeoutError_(BoltError, TimeoutError):
    """The file lock could not be obtained within the timeout."""

    message = "timeout"


# Errors raised when beginning or committing a transaction.


class TxNotWritableError(BoltError):
    """A write was attempted in a read-only transaction."""

    message = "tx not writable"


class TxClosedError(BoltError):
    """A transaction was used after commit or rollback."""

    message = "tx closed"


class DatabaseReadOnlyError(BoltError):
    """A writable transaction was started on a read-only database."""

    message = "database is in read-only mode"


class FreePagesNotLoadedError(BoltError):
    """Free pages were requested but were never loaded."""

    message = "free pages are not pre-loaded"


# Errors raised when putting or deleting a value or a bucket.


class BucketNotFoundError(BoltError):
    """The requested bucket does not exist."""

    message = "bucket not found"


class BucketExistsError(BoltError):
    """A bucket with that name already exists."""

    message = "bucket already exists"


class BucketNameRequiredError(BoltError):
    """A bucket was created with a blank name."""

    message = "bucket name required"


class KeyRequiredError(BoltError):
    """A zero-length key was given."""

    message = "key required"


class KeyTooLargeError(BoltError):
    """The key exceeds the maximum key size."""

    message = "key too large"


class ValueTooLargeError(BoltError):
    """The value exceeds the maximum value size."""

    message = "value too large"


class IncompatibleValueError(BoltError):
    """A bucket operation met a plain key, or a key operation met a bucket."""

    message = "incompatible value"