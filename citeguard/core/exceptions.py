"""Exception hierarchy for the validation pipeline."""


class CiteguardError(Exception):
    """Base exception for citeguard errors."""

    pass


class ConfigurationError(CiteguardError):
    """Required configuration (e.g. provider credentials) is missing."""

    pass


class DocumentNotFoundError(CiteguardError):
    """Document version does not exist."""

    pass


class CitationNotFoundError(CiteguardError):
    """Citation id is not present in a document version."""

    pass


class JobNotFoundError(CiteguardError):
    """Validation job does not exist."""

    pass


class QueueItemNotFoundError(CiteguardError):
    """Queue item does not exist."""

    pass


class DataIntegrityError(CiteguardError):
    """Queue item references a citation that is missing from its document."""

    pass


class InvalidStateError(CiteguardError):
    """Queue item or job is not in the state an operation requires."""

    pass


class PanelEvaluationError(CiteguardError):
    """A panel could not produce a complete set of verdicts.

    Attributes:
        agent: Agent whose call failed, if known
    """

    def __init__(self, message: str, agent: str | None = None) -> None:
        super().__init__(message)
        self.agent = agent
