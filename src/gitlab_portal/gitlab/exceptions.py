"""GitLab API exceptions."""

from __future__ import annotations


class UpstreamError(Exception):
    """Raised when a GitLab API call does not succeed.

    Every non-2xx status maps onto this one type; a 401 is not treated
    specially.

    Attributes:
        status: HTTP status code (0 when no response was received)
        status_text: HTTP reason phrase or error summary
        path: API path that was requested
        response_body: Raw response body (if available)
    """

    def __init__(
        self,
        status: int,
        status_text: str,
        path: str,
        response_body: dict | str | None = None,
    ) -> None:
        self.status = status
        self.status_text = status_text
        self.path = path
        self.response_body = response_body
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.status} - {self.status_text} - Fetch from {self.path} failed"
