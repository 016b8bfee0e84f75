"""
Core Validators

Shared validation functions. All raise InvalidRequest, so callers can map
them to a 400-class response without inspecting the message.
"""

from typing import Optional

from core.exceptions import InvalidRequest


def validate_token_count(
    estimated_tokens: int,
    max_tokens: int,
    model: str,
    module_name: str = "Module"
) -> None:
    """
    Validate that estimated tokens don't exceed the allowed budget.

    Args:
        estimated_tokens: Estimated token count for the request
        max_tokens: Maximum tokens allowed for the model
        model: Model the budget was computed for
        module_name: Name of the module for error messages

    Raises:
        InvalidRequest: If tokens exceed the budget
    """
    if estimated_tokens > max_tokens:
        raise InvalidRequest(
            f"{module_name}: Text contains approximately {estimated_tokens:,} tokens which exceeds "
            f"the maximum allowed limit of {max_tokens:,} tokens. Please reduce input size.",
            code="token_limit_exceeded",
            details={
                "estimated_tokens": estimated_tokens,
                "max_tokens": max_tokens,
                "model": model,
            }
        )


def validate_required_field(
    value: Optional[str],
    field_name: str,
    module_name: str = "Module"
) -> str:
    """
    Validate that a required field is not empty.

    Args:
        value: Value to validate
        field_name: Name of the field for error messages
        module_name: Name of the module for error messages

    Returns:
        The value, unchanged

    Raises:
        InvalidRequest: If value is None, empty or whitespace-only
    """
    if value is None or not value.strip():
        raise InvalidRequest(
            f"{module_name}: {field_name} is required and cannot be empty."
        )
    return value
