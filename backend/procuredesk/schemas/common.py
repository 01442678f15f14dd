from pydantic import BaseModel, PlainSerializer, model_validator
from pydantic.alias_generators import to_camel
from typing import Annotated, Any, Dict, Generic, List, Optional, TypeVar
from decimal import Decimal

# Money and quantities are Decimal in memory and plain JSON numbers on the wire,
# matching what the procurement API sends and expects.
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
Quantity = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
Rate = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base schema: snake_case attributes, camelCase JSON (the upstream API's casing)."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True

    @model_validator(mode="before")
    @classmethod
    def drop_nulls_with_defaults(cls, data):
        """The procurement API sends null for unset numbers and lists; those fields fall back to their default."""
        if not isinstance(data, dict):
            return data
        defaulted = set()
        for name, info in cls.model_fields.items():
            if not info.is_required() and info.default is not None:
                defaulted.add(name)
                if info.alias:
                    defaulted.add(info.alias)
        return {key: value for key, value in data.items() if not (value is None and key in defaulted)}


class Page(CamelModel, Generic[T]):
    """Paged list envelope returned by every upstream list endpoint"""
    content: List[T] = []
    total_elements: int = 0
    total_pages: int = 0
    size: int = 0
    number: int = 0


class CommandResult(CamelModel, Generic[T]):
    """
    Outcome of a mutation (create, submit, approve, ...).

    Services return this instead of raising or notifying; the presentation layer
    decides whether it becomes a toast, an HTTP error or a log line.
    """
    ok: bool
    message: str
    data: Optional[T] = None
    error_kind: Optional[str] = None
    status_code: int = 200
    errors: List[Dict[str, Any]] = []

    @classmethod
    def success(cls, message: str, data: Any = None, status_code: int = 200) -> "CommandResult":
        return cls(ok=True, message=message, data=data, status_code=status_code)

    @classmethod
    def failure(cls, error: Exception, data: Any = None) -> "CommandResult":
        message = getattr(error, "message", None) or str(error)
        return cls(
            ok=False,
            message=message,
            data=data,
            error_kind=getattr(error, "kind", "error"),
            status_code=getattr(error, "status_code", 500),
            errors=getattr(error, "errors", None) or [],
        )


class AvailableActions(CamelModel):
    """Actions a user may take on a document right now (what the UI renders as buttons)"""
    document_type: str
    document_id: Optional[int] = None
    status: str
    actions: List[str] = []
