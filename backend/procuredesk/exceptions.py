"""
Domain exceptions shared by the utils, services and routers.

Routers never see raw httpx errors: the API client converts them into
UpstreamAPIError, and workflow guards raise WorkflowError before anything is
sent upstream.
"""
from typing import Any, Dict, List, Optional

GENERIC_ERROR_MESSAGE = "An error occurred"


class ProcureDeskError(Exception):
    """Base class for every error raised by this package."""

    status_code = 500
    kind = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class WorkflowError(ProcureDeskError):
    """An action is not allowed from the document's current status."""

    status_code = 409
    kind = "illegal_transition"

    def __init__(self, document_type: str, status: str, action: str, message: Optional[str] = None):
        self.document_type = document_type
        self.status = status
        self.action = action
        super().__init__(
            message or f"Cannot {action} {document_type} in status {status}",
            {"document_type": document_type, "status": status, "action": action},
        )


class MissingInputError(WorkflowError):
    """An allowed action was attempted without one of its required inputs."""

    status_code = 422
    kind = "missing_input"

    def __init__(self, document_type: str, status: str, action: str, missing: List[str]):
        self.missing = missing
        super().__init__(
            document_type,
            status,
            action,
            f"Cannot {action} {document_type}: {', '.join(missing)} required",
        )
        self.details["missing"] = missing


class DocumentValidationError(ProcureDeskError):
    """Field-level validation failed before the document was sent upstream."""

    status_code = 422
    kind = "validation"

    def __init__(self, message: str, errors: Optional[List[Dict[str, str]]] = None):
        self.errors = errors or []
        super().__init__(message, {"errors": self.errors})


class DocumentNotFound(ProcureDeskError):
    status_code = 404
    kind = "not_found"

    def __init__(self, document_type: str, identifier: Any):
        self.document_type = document_type
        self.identifier = identifier
        super().__init__(f"{document_type} {identifier} not found")


class UpstreamAPIError(ProcureDeskError):
    """The procurement API answered with an error, or could not be reached."""

    kind = "upstream"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: int = 502,
        code: Optional[str] = None,
        errors: Optional[List[Dict[str, str]]] = None,
    ):
        self.status_code = status_code
        self.code = code
        self.errors = errors or []
        super().__init__(message or GENERIC_ERROR_MESSAGE, {"code": code, "errors": self.errors})
