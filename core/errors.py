"""Error taxonomy shared by the scraper, the pipeline stages and the task controller.

Every error carries a short human-readable ``user_message``; the task
controller shows that string and nothing else to the UI.
"""

from typing import List, Optional


class CuratorError(Exception):
    """Base class for failures that end a curation stage."""

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        self.user_message = user_message or message


class FetchError(CuratorError):
    """Network failure or non-2xx response from a remote service."""

    def __init__(self, message: str, status: Optional[int] = None, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.status = status


class ScrapeError(FetchError):
    """The scrape target page could not be fetched."""


class RateLimited(FetchError):
    """Remote service answered 429. Mitigated by pacing, never retried."""


class ParseError(CuratorError):
    """Markup or a response body could not be understood."""


class UnexpectedShape(ParseError):
    """A JSON response did not have the fields a consumer relies on."""


class NoData(CuratorError):
    """A result is empty where emptiness itself is an error."""


class NoPlaylists(NoData):
    def __init__(self):
        super().__init__("Library has zero playlists", "You have no playlists in your Spotify library.")


class AuthExpired(CuratorError):
    """The bearer token was rejected (401); the user has to log in again."""

    def __init__(self, message: str = "Spotify rejected the access token"):
        super().__init__(message, "Session expired, please log in again.")


class Cancelled(Exception):
    """Raised at a suspension point once the task's token has been cancelled.

    Not a CuratorError: cancellation is a terminal state, not a failure.
    """


class CreateFailed(CuratorError):
    """Creating a collection failed; earlier collections stay created."""

    def __init__(self, message: str, created_ids: Optional[List[str]] = None, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.created_ids = list(created_ids or [])


class PartialFailure(CuratorError):
    """Some writes succeeded before one failed. Nothing is rolled back."""

    def __init__(self, message: str, created_ids: Optional[List[str]] = None, user_message: Optional[str] = None):
        super().__init__(message, user_message)
        self.created_ids = list(created_ids or [])


class TaskAlreadyRunning(CuratorError):
    def __init__(self, running_kind: str):
        super().__init__(
            f"Task '{running_kind}' is already running",
            "Another playlist task is already running. Cancel it or wait for it to finish."
        )
        self.running_kind = running_kind
