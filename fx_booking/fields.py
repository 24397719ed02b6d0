"""Name-indexed field access for rule-driven overrides.

Each model class gets a :class:`FieldRegistry` mapping both the snake_case
field name and its camelCase alias to a getter/setter pair. Setters convert
incoming values to the declared field type, so a rule can write ``"1.25"``
into a ``Decimal`` column or ``"2024-03-01"`` into a date.
"""
from __future__ import annotations

import functools
import operator
import typing
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Type

import pydantic
from pydantic import BaseModel, ConfigDict, TypeAdapter

from .exceptions import MappingError
from .models import WorkingTrade

__all__ = [
    "FieldAccessor",
    "FieldRegistry",
    "registry_for",
    "get_field",
    "set_field",
    "json_value",
    "apply_field_map",
    "clone_with_fields",
]


@dataclass(frozen=True, slots=True)
class FieldAccessor:
    name: str
    getter: Callable[[Any], Any]
    setter: Callable[[Any, Any], None]
    nested_model: Optional[Type[BaseModel]] = None


def _nested_model(annotation: Any) -> Optional[Type[BaseModel]]:
    candidates = typing.get_args(annotation) or (annotation,)
    for candidate in candidates:
        if isinstance(candidate, type) and issubclass(candidate, BaseModel):
            return candidate
    return None


def _targets_str(annotation: Any) -> bool:
    return annotation is str or str in typing.get_args(annotation)


def _adapter(annotation: Any) -> TypeAdapter:
    # model types carry their own config and reject an override
    if _nested_model(annotation) is not None:
        return TypeAdapter(annotation)
    return TypeAdapter(annotation, config=ConfigDict(coerce_numbers_to_str=True))


def _make_setter(name: str, annotation: Any) -> Callable[[Any, Any], None]:
    adapter = _adapter(annotation)
    str_target = _targets_str(annotation)

    def _set(obj: Any, value: Any) -> None:
        if str_target and isinstance(value, bool):
            value = "true" if value else "false"
        try:
            converted = adapter.validate_python(value)
            setattr(obj, name, converted)
        except (pydantic.ValidationError, TypeError, ValueError) as exc:
            raise MappingError(
                f"Cannot assign {value!r} to field '{name}' of {type(obj).__name__}: {exc}",
                field_path=name,
            ) from exc

    return _set


class FieldRegistry:
    """Accessor table for one model class."""

    def __init__(self, model: Type[BaseModel]):
        self.model = model
        self._accessors: Dict[str, FieldAccessor] = {}
        for name, info in model.model_fields.items():
            accessor = FieldAccessor(
                name=name,
                getter=operator.attrgetter(name),
                setter=_make_setter(name, info.annotation),
                nested_model=_nested_model(info.annotation),
            )
            self._accessors[name] = accessor
            if info.alias:
                self._accessors.setdefault(info.alias, accessor)

    def lookup(self, name: str) -> FieldAccessor:
        try:
            return self._accessors[name]
        except KeyError:
            raise MappingError(
                f"Unknown field '{name}' on {self.model.__name__}", field_path=name
            ) from None


@functools.lru_cache(maxsize=None)
def registry_for(model: Type[BaseModel]) -> FieldRegistry:
    return FieldRegistry(model)


# Working trades are the hot path; build their table at import.
registry_for(WorkingTrade)


def _require_model(obj: Any, path: str) -> BaseModel:
    if not isinstance(obj, BaseModel):
        raise MappingError(
            f"Cannot resolve '{path}' on non-model value {type(obj).__name__}",
            field_path=path,
        )
    return obj


def get_field(obj: Any, path: str) -> Any:
    """Read a field by name or dotted path; ``None`` short-circuits the walk."""
    current = obj
    for segment in path.split("."):
        if current is None:
            return None
        current = registry_for(type(_require_model(current, path))).lookup(segment).getter(current)
    return current


def set_field(obj: Any, path: str, value: Any) -> None:
    """Write a field by name or dotted path, creating nested models on the way."""
    segments = path.split(".")
    current = _require_model(obj, path)
    for segment in segments[:-1]:
        accessor = registry_for(type(current)).lookup(segment)
        child = accessor.getter(current)
        if child is None:
            if accessor.nested_model is None:
                raise MappingError(f"Cannot traverse '{segment}' in '{path}'", field_path=path)
            child = accessor.nested_model()
            accessor.setter(current, child)
        current = _require_model(child, path)
    registry_for(type(current)).lookup(segments[-1]).setter(current, value)


def json_value(node: Any) -> Any:
    """Convert a decoded JSON value to the native value written into a field."""
    if isinstance(node, bool) or node is None or isinstance(node, (str, int)):
        return node
    if isinstance(node, float):
        return Decimal(str(node))
    if isinstance(node, list):
        return [json_value(item) for item in node]
    return node


def apply_field_map(obj: Any, mapping: Mapping[str, Any], ignore_fields: Iterable[str] = ()) -> None:
    ignored = set(ignore_fields)
    for key, node in mapping.items():
        if key in ignored:
            continue
        set_field(obj, key, json_value(node))


def clone_with_fields(obj: BaseModel, allowed_fields: Iterable[str]) -> BaseModel:
    """New instance of ``type(obj)`` carrying only *allowed_fields*.

    Every other field is left at its default. Unknown names raise
    :class:`MappingError`.
    """
    registry = registry_for(type(obj))
    names = {registry.lookup(field).name for field in allowed_fields}
    data = {name: getattr(obj, name) for name in names}
    return type(obj).model_construct(_fields_set=names, **data)
