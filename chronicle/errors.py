"""
chronicle/errors.py -- Exception hierarchy for the continuity engine.

Only I/O-adjacent failures and configuration mistakes are exceptions.
Contradictions between facts are ordinary data (``ConflictRecord``) and
ambiguous prose simply yields no fact, so neither appears here.
"""


class ChronicleError(Exception):
    """Base class for every error raised by the engine."""


class ConfigurationError(ChronicleError):
    """The engine was asked to do something its settings do not allow."""


class ClassifierConfigError(ConfigurationError):
    """Tier 2 is enabled but the classifier cannot be used as configured.

    Raised before any network call is attempted.
    """


class ResourceUnavailableError(ChronicleError):
    """A document, record or remote service could not be reached."""


class DocumentReadError(ResourceUnavailableError):
    """A scene document could not be read."""


class RecordReadError(ResourceUnavailableError):
    """A persisted entity record or the conflict log could not be read."""


class RecordWriteError(ResourceUnavailableError):
    """A persisted entity record or the conflict log could not be written."""


class ClassifierUnavailableError(ResourceUnavailableError):
    """The Tier 2 classifier call failed (network, HTTP status, SDK error)."""
