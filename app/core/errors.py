"""Domain exceptions for identity resolution, retrieval and ingestion.

Each error carries enough detail for the audit log and operational logs.
API handlers decide what (little) of it reaches the caller.
"""

from enum import Enum


class DenialReason(str, Enum):
    """Why a credential was refused. Recorded in the audit log only."""

    CREDENTIAL_NOT_FOUND = "credential_not_found"
    CREDENTIAL_REVOKED = "credential_revoked"
    CREDENTIAL_EXPIRED = "credential_expired"
    MALFORMED_CREDENTIAL = "malformed_credential"
    INVALID_OWNERSHIP = "invalid_ownership"


class AuthenticationError(Exception):
    """Credential could not be resolved to an actor."""

    def __init__(self, reason: DenialReason, credential_id: str | None = None):
        super().__init__(f"Authentication denied: {reason.value}")
        self.reason = reason
        self.credential_id = credential_id


class RetrievalError(Exception):
    """Embedding or store failure during a search or ingestion."""

    retryable: bool = True

    def __init__(self, message: str, retryable: bool | None = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class EmbeddingUnavailableError(RetrievalError):
    """Embedding service timed out, rate limited, or was unreachable."""

    retryable = True


class EmbeddingRejectedError(RetrievalError):
    """Embedding service refused the input (e.g. too long). Not retryable."""

    retryable = False


class StoreUnavailableError(RetrievalError):
    """Document store query failed."""

    retryable = True


class DataItemValidationError(ValueError):
    """Data item violates the ingestion contract and must be rejected."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field
