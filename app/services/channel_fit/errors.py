"""Exceptions raised by the channel-fit engine."""


class ChannelFitError(Exception):
    """Base class for channel-fit failures."""
    pass


class ConfigurationError(ChannelFitError):
    """Deployment is misconfigured (e.g. no pseudonym secret in production).

    Fatal: raised at startup or first use, never degraded.
    """
    pass


class ChannelFitValidationError(ChannelFitError, ValueError):
    """Caller passed malformed input. Raised before any cross-tenant work."""
    pass
