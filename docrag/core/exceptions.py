"""Custom exceptions for the application."""


class DocRagError(Exception):
    """Base class for application errors."""

    error_code = "INTERNAL_SERVER_ERROR"


class ConfigurationError(DocRagError):
    """Raised when a required setting or secret is missing."""

    error_code = "CONFIGURATION_ERROR"


class VectorDBError(DocRagError):
    """Raised when vector database operations fail."""

    error_code = "VECTOR_DB_ERROR"


class EmbeddingError(DocRagError):
    """Raised when embedding generation fails."""

    error_code = "EMBEDDING_ERROR"


class ThrottlingError(EmbeddingError):
    """Raised when an external API rejects a call because of rate limits."""

    error_code = "THROTTLED"


class LLMError(DocRagError):
    """Raised when LLM operations fail."""

    error_code = "LLM_ERROR"


class ChunkStoreError(DocRagError):
    """Raised when the intermediate chunk store fails."""

    error_code = "CHUNK_STORE_ERROR"


class ObjectStoreError(DocRagError):
    """Raised when an uploaded object cannot be read or removed."""

    error_code = "OBJECT_STORE_ERROR"


class ExtractionError(DocRagError):
    """Raised when text cannot be extracted from a document."""

    error_code = "EXTRACTION_ERROR"


class DLQError(DocRagError):
    """Raised when retry-topic publishing fails."""

    error_code = "DLQ_ERROR"


class DatabaseError(DocRagError):
    """Raised when database operations fail."""

    error_code = "DATABASE_ERROR"


class DocumentNotFoundError(DatabaseError):
    """Raised when a document record does not exist."""

    error_code = "DOCUMENT_NOT_FOUND"


class WorkflowError(DocRagError):
    """Raised when the durable execution backend cannot be reached."""

    error_code = "WORKFLOW_ERROR"


class StepValidationError(DocRagError):
    """Raised when an orchestrator step request misses required fields."""

    error_code = "INVALID_PARAMETER"


class InvalidUploadKeyError(DocRagError):
    """Raised when an object key does not follow uploads/{ownerId}/{documentId}."""

    error_code = "INVALID_PARAMETER"


class InvalidRequestError(DocRagError):
    """Raised when a chat request is malformed."""

    error_code = "MISSING_PARAMETER"


class IngestionRetryError(DocRagError):
    """Raised when a failure could not be recorded and the trigger must be re-delivered."""

    error_code = "INGESTION_RETRY"
