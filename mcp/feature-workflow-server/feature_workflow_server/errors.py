"""
Error kinds for the Feature Workflow MCP Server.

Every error carries an ``error_type`` string so the tool boundary can turn it
into a ``{"success": False, "error": ..., "error_type": ...}`` envelope.
"""


class WorkflowError(Exception):
    """Base exception for feature workflow errors"""
    error_type = "workflow_error"


class NotFoundError(WorkflowError):
    """Unknown workflow or task id"""
    error_type = "not_found"


class ValidationError(WorkflowError):
    """Missing or malformed argument"""
    error_type = "validation_error"


class StorageError(WorkflowError):
    """Record store I/O failure"""
    error_type = "storage_error"


class FileSystemError(WorkflowError):
    """Feature directory or template I/O failure"""
    error_type = "filesystem_error"
