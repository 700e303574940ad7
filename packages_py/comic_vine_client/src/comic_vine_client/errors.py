"""
Errors raised by the Comic Vine client.
"""
from typing import Optional

ISSUES_HELP = (
    "Please open a Github issue with steps to reproduce: "
    "https://github.com/AllyMurray/comic-vine/issues"
)


class ComicVineError(Exception):
    """Base class for client errors. ``help`` suggests what to do next."""

    def __init__(self, message: str, help: str = ISSUES_HELP) -> None:
        super().__init__(message)
        self.message = message
        self.help = help


class ComicVineRequestError(ComicVineError):
    """The HTTP request failed for a reason without a dedicated error."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(f"Request to comic vine failed: {message or 'Unknown Error'}")


class ComicVineUnauthorizedError(ComicVineError):
    def __init__(self) -> None:
        super().__init__(
            "Unauthorized response received when calling the Comic Vine API",
            help="Ensure you have a valid API key, you can get one from: https://comicvine.gamespot.com/api/",
        )


class ComicVineObjectNotFoundError(ComicVineError):
    def __init__(self) -> None:
        super().__init__(
            "The requested resource could not be found in the Comic Vine API",
            help="Ensure you have used a valid resource Id",
        )


class ComicVineUrlFormatError(ComicVineError):
    def __init__(self) -> None:
        super().__init__("The url for the request was not in the correct format")


class ComicVineJsonpCallbackMissingError(ComicVineError):
    def __init__(self) -> None:
        super().__init__(
            "JSONP format requires a callback",
            help=f"This library does not use JSONP. {ISSUES_HELP}",
        )


class ComicVineFilterError(ComicVineError):
    def __init__(self) -> None:
        super().__init__("There was a problem trying to filter the API results")


class ComicVineSubscriberOnlyError(ComicVineError):
    def __init__(self) -> None:
        super().__init__(
            "The requested video is for subscribers only",
            help="Subscriber videos are part of a paid service, if you wish to upgrade you can do so here: https://comicvine.gamespot.com/upgrade/",
        )


class OptionsValidationError(ComicVineError):
    """Client options failed validation."""

    def __init__(self, path: str, problem: str) -> None:
        super().__init__(
            f"Property: {path}, Problem: {problem}",
            help=f"If the error message does not provide enough information or you believe there is a bug. {ISSUES_HELP}",
        )
        self.path = path
        self.problem = problem


class RateLimitExceededError(ComicVineError):
    """A request was refused because its resource has no budget left."""

    def __init__(self, resource: str, wait_time_ms: int) -> None:
        super().__init__(
            f"Rate limit exceeded for resource '{resource}'. Retry in {wait_time_ms}ms",
            help="Wait before retrying, or construct the client with throw_on_rate_limit=False to wait automatically",
        )
        self.resource = resource
        self.wait_time_ms = wait_time_ms
