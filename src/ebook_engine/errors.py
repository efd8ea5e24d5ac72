"""Exceptions raised by the engine.

Malformed input is reported through ``None`` results and ``Validity.INVALID``;
these exceptions cover caller mistakes.
"""


class EbookEngineError(Exception):
    """Base class for engine errors."""


class ContainerClosedError(EbookEngineError):
    """A chapter was resolved after its container was closed."""


class UnsupportedFormatError(EbookEngineError, ValueError):
    """No parser exists for the requested format."""


class InvalidRuleSetError(EbookEngineError, ValueError):
    """A replacement rule set is not a flat string-to-string mapping."""
