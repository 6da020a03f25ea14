class CatalogError(Exception):
    """Base error carrying the HTTP status surfaced to the client."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CatalogError):
    """Missing or malformed input. Raised before any upstream call."""

    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(CatalogError):
    """The client-credentials exchange with the catalog failed."""

    status_code = 502
    default_message = "Could not authenticate with Spotify API."


class UpstreamError(CatalogError):
    """The catalog answered with a non-success status."""

    default_message = "Upstream request failed"

    def __init__(self, status_code: int, message: str = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"UpstreamError(status_code={self.status_code!r}, message={self.message!r})"


class NetworkError(CatalogError):
    """The catalog could not be reached (DNS, connection, timeout)."""

    status_code = 500
    default_message = "Failed to reach the music catalog"
