"""Identifier and filename helpers shared by the storage and lifecycle layers."""

import re
import uuid

from shared.models.errors import InvalidIdentifierError

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def is_valid_uuid(value: str | None) -> bool:
    """Check that a string is a canonical UUID (xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx)."""
    if not value or len(value) != 36:
        return False
    try:
        return str(uuid.UUID(value)) == value.lower()
    except ValueError:
        return False


def require_uuid(field: str, value: str | None) -> str:
    """Return the value unchanged if it is a UUID.

    Raises:
        InvalidIdentifierError: If the value is not a valid UUID.
    """
    if not is_valid_uuid(value):
        raise InvalidIdentifierError(field, str(value))
    return value


def sanitize_filename(filename: str) -> str:
    """Replace every character outside [A-Za-z0-9._-] with an underscore."""
    return _UNSAFE_FILENAME_CHARS.sub("_", filename)


def get_file_extension(filename: str) -> str:
    """Return the lower-cased extension of a filename without the dot ("" if none)."""
    parts = filename.split(".")
    return parts[-1].lower() if len(parts) > 1 else ""
