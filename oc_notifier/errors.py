"""Exception types for oc-notifier."""


class NotifierError(Exception):
    """Base class for all oc-notifier errors."""


class ConfigError(NotifierError):
    """Configuration file is missing, unreadable or invalid."""


class StreamConnectionError(NotifierError):
    """The event stream could not be opened or ended unexpectedly."""


class ProviderError(NotifierError):
    """A notification destination rejected a delivery."""

    def __init__(self, provider: str, status: int, body: str = "") -> None:
        self.provider = provider
        self.status = status
        self.body = body
        super().__init__(f"{provider} webhook failed: {status} {body}".rstrip())
