"""
Typed Custom Fields

Custom reference fields and extraction values are stored as a tagged
union keyed by the declared column type, so an invalid value is rejected
when it is written rather than when a report is built.
"""

from datetime import date
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
import enum
import logging

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..errors import CustomFieldError

logger = logging.getLogger(__name__)


class ColumnType(str, enum.Enum):
    """Declared column type"""
    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DROPDOWN = "dropdown"
    MULTI_SELECT = "multi_select"


# ===== Tagged values =====

class TextValue(BaseModel):
    type: Literal["text"] = "text"
    value: str


class NumberValue(BaseModel):
    type: Literal["number"] = "number"
    value: float


class BooleanValue(BaseModel):
    type: Literal["boolean"] = "boolean"
    value: bool


class DateValue(BaseModel):
    type: Literal["date"] = "date"
    value: date


class DropdownValue(BaseModel):
    type: Literal["dropdown"] = "dropdown"
    value: str


class MultiSelectValue(BaseModel):
    type: Literal["multi_select"] = "multi_select"
    value: List[str]


FieldValue = Annotated[
    Union[TextValue, NumberValue, BooleanValue, DateValue, DropdownValue, MultiSelectValue],
    Field(discriminator="type"),
]

_field_value_adapter = TypeAdapter(FieldValue)
_TAGGED_VALUES = (TextValue, NumberValue, BooleanValue, DateValue, DropdownValue, MultiSelectValue)


def coerce_field_value(name: str, value: Any) -> FieldValue:
    """
    Accept a tagged value or its dict form, e.g. {"type": "number", "value": 12}

    Raises:
        CustomFieldError: value is not a typed custom field value
    """
    if isinstance(value, _TAGGED_VALUES):
        return value
    try:
        return _field_value_adapter.validate_python(value)
    except ValidationError as e:
        raise CustomFieldError(f"Custom field '{name}' is not a typed value: {value!r}", column=name) from e


# ===== Schema =====

class FieldColumn(BaseModel):
    """One declared custom column"""
    name: str
    type: ColumnType = ColumnType.TEXT
    description: Optional[str] = None
    required: bool = False
    options: Optional[List[str]] = None  # dropdown / multi_select choices


class FieldSchema(BaseModel):
    """
    Declared set of custom columns for a project

    Usage:
        schema = FieldSchema(name="Extraction", columns=[
            FieldColumn(name="sample_size", type=ColumnType.NUMBER, required=True),
        ])
        values = schema.validate_values({"sample_size": "120"})
    """
    name: str
    columns: List[FieldColumn] = Field(default_factory=list)

    def column(self, name: str) -> Optional[FieldColumn]:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def validate_values(self, raw: Dict[str, Any]) -> Dict[str, FieldValue]:
        """
        Validate raw values against the declared columns

        Args:
            raw: Column name -> raw value

        Returns:
            Column name -> typed value

        Raises:
            CustomFieldError: unknown column, missing required column,
                wrong value type or value outside declared options
        """
        typed: Dict[str, FieldValue] = {}

        for name, value in raw.items():
            col = self.column(name)
            if col is None:
                raise CustomFieldError(f"Unknown column '{name}' for schema '{self.name}'", column=name)
            typed[name] = self._validate_one(col, value)

        missing = [col.name for col in self.columns if col.required and col.name not in typed]
        if missing:
            raise CustomFieldError(f"Missing required columns: {missing}", column=missing[0])

        logger.debug(f"Validated {len(typed)} custom values for schema '{self.name}'")
        return typed

    def _validate_one(self, col: FieldColumn, value: Any) -> FieldValue:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise CustomFieldError(f"Empty value for column '{col.name}'", column=col.name)

        if col.type == ColumnType.MULTI_SELECT and isinstance(value, str):
            value = [part.strip() for part in value.split(';') if part.strip()]

        try:
            typed = _field_value_adapter.validate_python({"type": col.type.value, "value": value})
        except ValidationError as e:
            raise CustomFieldError(
                f"Invalid {col.type.value} value for column '{col.name}': {value!r}",
                column=col.name
            ) from e

        if col.options is not None:
            chosen = typed.value if isinstance(typed.value, list) else [typed.value]
            invalid = [v for v in chosen if v not in col.options]
            if invalid:
                raise CustomFieldError(
                    f"Values {invalid} not in options {col.options} for column '{col.name}'",
                    column=col.name
                )

        return typed
