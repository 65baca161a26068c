"""
Error taxonomy for the contextual memory subsystem.
"""

from typing import Optional


class ContextualMemoryError(Exception):
    """Base class for every error raised by this package."""

    def __init__(self, message: str, owner_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.owner_id = owner_id
        self.operation = operation


class ProvisioningError(ContextualMemoryError):
    """Dedicated index creation failed. Retryable."""

    def __init__(self, message: str, owner_id: Optional[str] = None, index_name: Optional[str] = None):
        super().__init__(message, owner_id=owner_id, operation="provision")
        self.index_name = index_name


class RetrievalError(ContextualMemoryError):
    """Embedding or vector query failed while building context."""
    pass


class PersistenceError(ContextualMemoryError):
    """A vector upsert or a profile read or write failed."""
    pass


class GenerationError(ContextualMemoryError):
    """The profile delta generator produced unusable output."""
    pass


class VectorProviderError(Exception):
    """Raised by vector index providers."""
    pass


class IndexAlreadyExistsError(VectorProviderError):
    pass


class IndexNotFoundError(VectorProviderError):
    pass
