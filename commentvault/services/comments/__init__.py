"""Comment persistence and change tracking."""

from commentvault.services.comments.diff import (
    BatchResult,
    CommentService,
    UpsertOutcome,
    format_audit_value,
)

__all__ = ["BatchResult", "CommentService", "UpsertOutcome", "format_audit_value"]
