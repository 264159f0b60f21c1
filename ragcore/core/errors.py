"""Error taxonomy for the retrieval and SQL tool layers."""

from typing import Optional


class RagCoreError(Exception):
    pass


class SQLValidationError(RagCoreError):
    """A candidate SQL string was rejected before reaching the database."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFoundError(RagCoreError):
    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"{resource} not found: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class SearchEngineError(RagCoreError):
    """Transport or execution failure reported by the search engine."""

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__(message)
        self.raw = raw


class EmbeddingError(RagCoreError):
    pass


class DatabaseQueryError(RagCoreError):
    pass


class ToolArgumentError(RagCoreError):
    pass
