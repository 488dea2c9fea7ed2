"""Exceptions raised by the alert pipeline and its collaborators."""


class VybeBotError(Exception):
    """Base class for all vybebot errors."""


class ProviderUnavailable(VybeBotError):
    """The analytics provider could not answer a query (HTTP error, timeout, bad payload)."""


class MalformedAlert(VybeBotError):
    """An alert record has a missing resource key or a condition that does not match its kind."""


class RepositoryFailure(VybeBotError):
    """The alert store could not be read or written."""
