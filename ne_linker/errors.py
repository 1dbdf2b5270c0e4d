"""Exceptions raised by entity linking collaborators."""


class LinkingError(Exception):
    """Base class for entity linking errors."""


class LookupFailure(LinkingError):
    """A single knowledge base could not be queried."""


class SessionResolutionError(LookupFailure):
    """The read context of a document could not be obtained."""
