"""Errors raised before a response stream is opened.

Anything raised once streaming has begun is folded into an in-band error
frame by the relay instead; see ``chat_relay.services.relay``.
"""


class RelayError(Exception):
    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(RelayError):
    """The provider cannot be used with the current process configuration."""

    status_code = 500


class UpstreamRejection(RelayError):
    """The model provider refused or failed the request."""

    status_code = 502
