"""
Command outcome and error detail schemas.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ErrorDetail(BaseModel):
    """Individual error detail model."""

    type: str = Field(description="Error type")
    message: str = Field(description="Error message")
    field: Optional[str] = Field(description="Field that caused the error", default=None)
    value: Optional[Any] = Field(description="Invalid value that caused the error", default=None)


class CommandResult(BaseModel):
    """Outcome of a controller command."""

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "accepted": False,
                "message": "Configuration rejected",
                "errors": [
                    {
                        "type": "value_error",
                        "message": "Initial population cannot be negative",
                        "field": "initial_population",
                        "value": -5
                    }
                ]
            }
        },
    )

    accepted: bool = Field(description="Whether the command was accepted")
    message: str = Field(default="", description="Human-readable outcome")
    errors: List[ErrorDetail] = Field(default_factory=list, description="Reasons for rejection")

    @classmethod
    def ok(cls, message: str = "") -> 'CommandResult':
        return cls(accepted=True, message=message)

    @classmethod
    def rejected(cls, message: str, error_type: str = "value_error",
                 field: Optional[str] = None, value: Any = None) -> 'CommandResult':
        return cls(
            accepted=False,
            message=message,
            errors=[ErrorDetail(type=error_type, message=message, field=field, value=value)],
        )

    @classmethod
    def from_validation_error(cls, exc: ValidationError, message: str = "Configuration rejected") -> 'CommandResult':
        """Convert pydantic validation errors into error details."""
        details = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            value = error.get("input")
            details.append(ErrorDetail(
                type=error.get("type", "value_error"),
                message=error.get("msg", ""),
                field=location or None,
                value=value if isinstance(value, (str, int, float, bool, type(None))) else repr(value),
            ))
        return cls(accepted=False, message=message, errors=details)
