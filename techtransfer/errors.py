"""Error types raised by the portal clients and the AI capability."""

from typing import Optional


class PortalError(Exception):
    """Base class for portal client errors."""

    description = "Portal error"

    def __init__(self, description: Optional[str] = None):
        if description:
            self.description = description
        super().__init__(self.description)


class InvalidURLError(PortalError):
    description = "Invalid URL"


class InvalidResponseError(PortalError):
    description = "Invalid response from server"


class HttpError(PortalError):
    """Non-200 status from the search endpoint."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Server error: {status_code}")


class DecodingError(PortalError):
    """Search response body could not be decoded."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(f"Failed to parse response: {cause}")


class NoResultsError(PortalError):
    description = "No patents found"


class AIServiceError(Exception):
    """Base class for AI capability errors."""


class AICredentialError(AIServiceError):
    """No API key is available to authorize AI calls."""

    def __init__(self, message: str = "AI API key is not configured"):
        super().__init__(message)


class AIResponseError(AIServiceError):
    """The model answered with something that could not be parsed."""
