"""
Object validation collaborators.

A validator checks a value against a schema and either returns the typed
value or raises ObjectValidationError with field-level items. Validators are
plain values passed to whichever component needs them; there is no global
registry.
"""

import logging
from typing import Any, Dict, List, Protocol, Tuple, Type, runtime_checkable

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ObjectValidationError, ValidationItem

logger = logging.getLogger(__name__)


class _SkipValidation:
    """Sentinel type for an explicitly disabled validation stage."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "SKIP_VALIDATION"


SKIP_VALIDATION = _SkipValidation()


@runtime_checkable
class ObjectValidator(Protocol):
    """Validates a value against a schema."""

    def validate(self, value: Any, schema: Any) -> Any:
        ...


@runtime_checkable
class BoundValidator(Protocol):
    """A validator already bound to one schema."""

    def validate(self, value: Any) -> Any:
        ...


class SchemaBoundValidator:
    """Binds an ObjectValidator to a schema."""

    def __init__(self, validator: ObjectValidator, schema: Any):
        self.validator = validator
        self.schema = schema

    def validate(self, value: Any) -> Any:
        return self.validator.validate(value, self.schema)

    def __repr__(self):
        return f"SchemaBoundValidator({self.validator!r}, {self.schema!r})"


def _loc_to_field(loc: Tuple[Any, ...]) -> str:
    return ".".join(str(part) for part in loc) or "value"


def validation_items_from_pydantic(error: PydanticValidationError) -> List[ValidationItem]:
    """Convert a pydantic ValidationError into validation items."""
    return [
        ValidationItem(field=_loc_to_field(detail.get("loc", ())), message=detail.get("msg", "Invalid value"))
        for detail in error.errors(include_url=False)
    ]


class PydanticObjectValidator:
    """ObjectValidator backed by pydantic.

    Any type pydantic can validate works as a schema: BaseModel subclasses,
    dataclasses, TypedDicts, ``List[int]``, ... Type adapters are cached per
    schema; the cache only ever grows with the set of schemas in use.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict
        self._adapters: Dict[Any, TypeAdapter] = {}

    def _adapter(self, schema: Any) -> TypeAdapter:
        adapter = self._adapters.get(schema)
        if adapter is None:
            adapter = TypeAdapter(schema)
            self._adapters[schema] = adapter
        return adapter

    def validate(self, value: Any, schema: Any) -> Any:
        try:
            return self._adapter(schema).validate_python(value, strict=self.strict)
        except PydanticValidationError as e:
            items = validation_items_from_pydantic(e)
            logger.debug(f"Validation against {schema!r} failed with {len(items)} error(s)")
            raise ObjectValidationError(
                f"Validation failed for {_schema_name(schema)}",
                cause=e,
                validation_errors=items,
            ) from e

    def bind(self, schema: Any) -> SchemaBoundValidator:
        """Return a validator bound to ``schema``."""
        return SchemaBoundValidator(self, schema)

    def __repr__(self):
        return f"PydanticObjectValidator(strict={self.strict})"


def _schema_name(schema: Any) -> str:
    if isinstance(schema, type):
        return schema.__name__
    return repr(schema)


def bind_validator(validator: ObjectValidator, schema: Type[Any]) -> SchemaBoundValidator:
    """Bind any ObjectValidator to a schema."""
    return SchemaBoundValidator(validator, schema)
