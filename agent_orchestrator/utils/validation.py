"""
Input validation utilities for orchestrator operations.
"""

from typing import Any, Dict, Iterable, Type, TypeVar, Union
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from ..models.core import WorkflowDefinition
from ..models.errors import ValidationError, InvalidWorkflowError

ModelT = TypeVar("ModelT", bound=BaseModel)


def require_id(value: Any, field_name: str) -> str:
    """
    Validate that an identifier is a non-empty string.

    Raises:
        ValidationError: If the value is not a non-blank string
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field_name} must be a non-empty string", field=field_name)
    return value


def require_mapping(value: Any, field_name: str) -> Dict[str, Any]:
    """Validate an optional key-value payload, treating None as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError(f"{field_name} must be a mapping", field=field_name)
    return value


def coerce_model(data: Union[ModelT, Dict[str, Any]], model_class: Type[ModelT],
                 field_name: str) -> ModelT:
    """
    Accept either a model instance or a raw mapping and return a model.

    Raises:
        InvalidWorkflowError: For workflow definitions that fail validation
        ValidationError: For any other model that fails validation
    """
    if isinstance(data, model_class):
        return data
    if not isinstance(data, dict):
        raise ValidationError(
            f"{field_name} must be a {model_class.__name__} or a mapping",
            field=field_name,
        )
    try:
        return model_class.model_validate(data)
    except PydanticValidationError as e:
        if issubclass(model_class, WorkflowDefinition):
            raise InvalidWorkflowError(
                f"Invalid workflow definition: {e}", workflow_id=data.get("id")
            ) from e
        raise ValidationError(f"Invalid {field_name}: {e}", field=field_name) from e


def normalize_capabilities(capabilities: Iterable[str]) -> set:
    """Validate capability tags and return them as a set."""
    if isinstance(capabilities, str):
        raise ValidationError("capabilities must be a collection of tags, not a string")
    tags = set()
    for tag in capabilities:
        if not isinstance(tag, str) or not tag:
            raise ValidationError(f"Invalid capability tag: {tag!r}")
        tags.add(tag)
    return tags
