"""Error taxonomy of the content lifecycle.

Fatal setup problems subclass ValueError, lookups subclass LookupError, so
callers that only know the builtin hierarchy still catch them sensibly.
"""


class ConfigurationError(ValueError):
    """A required setting is missing or invalid. Never retried."""


class InvalidIdentifierError(ValueError):
    """A tenant or course identifier is not a valid UUID."""

    def __init__(self, field: str, value: str):
        super().__init__(f"Invalid {field} format: '{value}'")
        self.field = field
        self.value = value


class FileNotFoundInCatalogError(LookupError):
    """No FileRecord exists for the requested id."""

    def __init__(self, file_id: str, detail: str | None = None):
        message = f"File {file_id} not found"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.file_id = file_id


class OrganizationNotFoundError(LookupError):
    """No organization row exists for the requested id."""

    def __init__(self, organization_id: str):
        super().__init__(f"Organization not found: {organization_id}")
        self.organization_id = organization_id


class QuotaExceededError(Exception):
    """An increment pushed an organization above its storage quota.

    Raised only after the increment has been rolled back.
    """

    def __init__(self, organization_id: str, used_bytes: int, quota_bytes: int, requested_bytes: int):
        super().__init__(
            f"Storage quota exceeded for organization {organization_id}: "
            f"{used_bytes} / {quota_bytes} bytes (requested {requested_bytes} bytes)"
        )
        self.organization_id = organization_id
        self.used_bytes = used_bytes
        self.quota_bytes = quota_bytes
        self.requested_bytes = requested_bytes


class NoSourceVectorsError(Exception):
    """A donor marked as indexed has no points in the vector index."""

    def __init__(self, file_id: str):
        super().__init__(f"No vectors found for original file {file_id}")
        self.file_id = file_id


class BackendRequestError(Exception):
    """An HTTP backend answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int, body: str = ""):
        super().__init__(f"Request to {url} failed with status {status_code}")
        self.url = url
        self.status_code = status_code
        self.body = body
