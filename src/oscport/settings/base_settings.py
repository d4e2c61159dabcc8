"""
Base Settings

Dataclass-based settings with per-field validation metadata.

Usage:
    @dataclass
    class MySettings(BaseSettings):
        volume: int = validated_field(50, min_value=0, max_value=100)

    settings = MySettings.from_dict({"volume": 150})
    result = settings.validate()     # result.valid is False
    settings.raise_if_invalid()      # raises ConfigurationError
"""
from dataclasses import dataclass, asdict, fields, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

from oscport.errors import ConfigurationError


@dataclass
class ValidationResult:
    """
    Result of validating settings.

    Attributes:
        valid: True if all validations passed
        errors: List of error messages (validation failures)
        warnings: List of warning messages (non-blocking issues)
        error_fields: Field name for each entry in errors
    """
    valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error_fields: List[str] = field(default_factory=list)

    def add_error(self, message: str, field_name: str = ""):
        """Add an error and mark as invalid."""
        self.errors.append(message)
        self.error_fields.append(field_name)
        self.valid = False

    def add_warning(self, message: str):
        """Add a warning (doesn't affect validity)."""
        self.warnings.append(message)

    def merge(self, other: 'ValidationResult'):
        """Merge another ValidationResult into this one."""
        if not other.valid:
            self.valid = False
        self.errors.extend(other.errors)
        self.error_fields.extend(other.error_fields)
        self.warnings.extend(other.warnings)

    def __bool__(self) -> bool:
        return self.valid


@dataclass
class FieldValidator:
    """
    Validation rules for a settings field.

    Use through validated_field() rather than directly.
    """
    min_value: Optional[Union[int, float]] = None
    max_value: Optional[Union[int, float]] = None
    choices: Optional[List[Any]] = None
    required: bool = False
    allow_none: bool = True
    # Signature: (value, field_name) -> Optional[str] (error message or None)
    custom: Optional[Callable[[Any, str], Optional[str]]] = None

    def validate(self, value: Any, field_name: str) -> ValidationResult:
        result = ValidationResult()

        if value is None:
            if not self.allow_none:
                result.add_error(f"{field_name}: Cannot be None", field_name)
            elif self.required:
                result.add_error(f"{field_name}: Required field cannot be empty", field_name)
            return result

        if self.required and isinstance(value, str) and not value.strip():
            result.add_error(f"{field_name}: Required field cannot be empty", field_name)
            return result

        # bool is an int subclass; a flag is never a valid number here
        is_number = isinstance(value, (int, float)) and not isinstance(value, bool)
        if (self.min_value is not None or self.max_value is not None) and not is_number:
            result.add_error(f"{field_name}: Expected a number, got {type(value).__name__}", field_name)
            return result

        if self.min_value is not None and value < self.min_value:
            result.add_error(f"{field_name}: Value {value} is below minimum {self.min_value}", field_name)

        if self.max_value is not None and value > self.max_value:
            result.add_error(f"{field_name}: Value {value} is above maximum {self.max_value}", field_name)

        if self.choices is not None:
            check_value = value.value if isinstance(value, Enum) else value
            valid_choices = [c.value if isinstance(c, Enum) else c for c in self.choices]
            if check_value not in valid_choices:
                result.add_error(f"{field_name}: Value '{value}' not in allowed choices: {self.choices}", field_name)

        if self.custom is not None:
            error = self.custom(value, field_name)
            if error:
                result.add_error(error, field_name)

        return result


def validated_field(
    default: Any = None,
    *,
    min_value: Optional[Union[int, float]] = None,
    max_value: Optional[Union[int, float]] = None,
    choices: Optional[List[Any]] = None,
    required: bool = False,
    allow_none: bool = True,
    custom: Optional[Callable[[Any, str], Optional[str]]] = None,
    **kwargs
):
    """
    Create a dataclass field with validation metadata.

    Example:
        buffer_size: int = validated_field(1536, min_value=1, max_value=65536)
    """
    validator = FieldValidator(
        min_value=min_value,
        max_value=max_value,
        choices=choices,
        required=required,
        allow_none=allow_none,
        custom=custom,
    )

    metadata = kwargs.pop('metadata', {})
    metadata['validator'] = validator

    return field(default=default, metadata=metadata, **kwargs)


@dataclass
class BaseSettings:
    """
    Base class for settings dataclasses.

    Subclasses define every field with a default so from_dict() can fill gaps.
    """

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseSettings':
        """
        Create settings from a dictionary.

        Unknown keys are ignored, missing keys take their defaults.
        """
        valid_keys = {f.name for f in fields(cls)}
        merged = asdict(cls())
        merged.update({k: v for k, v in data.items() if k in valid_keys})
        return cls(**merged)

    def validate(self) -> ValidationResult:
        """Validate every field that carries a FieldValidator."""
        result = ValidationResult()
        for f in fields(self):
            validator = f.metadata.get('validator') if f.metadata else None
            if isinstance(validator, FieldValidator):
                result.merge(validator.validate(getattr(self, f.name), f.name))
        return result

    def is_valid(self) -> bool:
        return self.validate().valid

    def raise_if_invalid(self) -> None:
        """Raise ConfigurationError for the first failing field."""
        result = self.validate()
        if not result.valid:
            raise ConfigurationError(result.errors[0], field_name=result.error_fields[0] or None)
