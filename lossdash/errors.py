"""Exception hierarchy for the loading and aggregation core."""


class LossDashError(Exception):
    """Base exception for lossdash errors."""

    pass


class ValidationError(LossDashError):
    """Malformed filter or page arguments."""

    pass


class AuthenticationError(LossDashError):
    """No credentials available to forward to the record service."""

    pass


class TransportError(LossDashError):
    """Network or HTTP failure talking to the record service."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class PartialLoadError(LossDashError):
    """One or more additional incident pages failed after page 1 succeeded."""

    def __init__(self, failed_pages: list[int] | tuple[int, ...]):
        self.failed_pages = tuple(sorted(failed_pages))
        pages = ", ".join(str(page) for page in self.failed_pages)
        super().__init__(f"Failed to load incident pages: {pages}")


class SupersededLoadError(LossDashError):
    """A newer fingerprint replaced the one being loaded before it finished."""

    pass
