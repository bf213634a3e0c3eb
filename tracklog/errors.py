"""
Exception types raised by the recorder and its storage layer.
"""


class TracklogError(Exception):
    """Base class for all recorder errors."""


class StorageBusyError(TracklogError):
    """
    The store refused a single operation because it is busy or locked.

    Transient: the operation did not happen, and the next one may succeed.
    """


class InvalidStateError(TracklogError):
    """A control-surface call was made in a state that does not allow it."""


class SourceUnavailableError(TracklogError):
    """The positioning source could not (un)register a listener."""
