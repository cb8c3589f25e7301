class DomainError(Exception):
    """Base class for domain-specific errors."""

    pass


class UnknownProviderError(DomainError):
    """Exception raised when a roster names a provider that does not exist."""

    pass


class UnknownQuotaCategoryError(DomainError):
    """Exception raised when a quota category has no registered unit cost."""

    pass


class InvalidOutcomeTransition(DomainError):
    """Exception raised when a provider outcome leaves a terminal state."""

    pass
