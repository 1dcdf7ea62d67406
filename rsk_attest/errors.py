class AttestError(Exception):
    """Base error for all user-facing attestation exceptions."""


class ConfigurationError(AttestError):
    """Raised when configuration is invalid or incomplete."""


class TransportError(AttestError):
    """Raised when the indexer is unreachable or answers with a non-2xx status."""


class IndexerQueryError(AttestError):
    """Raised when the indexer accepted the request but rejected the query."""


class EncodingError(AttestError):
    """Raised when values do not fit the layout a schema declares."""


class InvalidQueryError(AttestError):
    """Raised when a query predicate is malformed."""


class RegistryError(AttestError):
    """Raised when a call to the on-chain registry fails."""
