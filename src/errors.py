from __future__ import annotations


class DrivetunesError(Exception):
    """Base class for errors raised by the service."""


class ClientInputError(DrivetunesError):
    """A required request parameter is missing."""


class CredentialError(DrivetunesError):
    """An access token could not be obtained."""


class UpstreamListError(DrivetunesError):
    """Drive rejected a listing call; status and body are relayed as-is."""

    def __init__(
        self, status: int, body: str, content_type: str = "application/json"
    ) -> None:
        super().__init__(f"Drive listing failed with status {status}")
        self.status = status
        self.body = body
        self.content_type = content_type


class UpstreamFetchError(DrivetunesError):
    def __init__(self, status: int, file_id: str) -> None:
        super().__init__(f"Drive media request for {file_id} failed with status {status}")
        self.status = status
        self.file_id = file_id


class ExtractionError(DrivetunesError):
    """Embedded metadata could not be parsed."""
