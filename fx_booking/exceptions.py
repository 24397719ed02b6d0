"""Error taxonomy for the booking engine.

Every error raised by the engine derives from :class:`BookingError` so the
API layer and the orchestrator can tell engine failures apart from bugs.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "BookingError",
    "ValidationError",
    "TransformationError",
    "MappingError",
    "BusinessError",
    "DataAccessError",
    "PublishError",
]


class BookingError(Exception):
    """Base class for engine errors."""

    def context(self) -> Dict[str, Any]:
        return {}


class ValidationError(BookingError):
    """A record group violates its cardinality or shape invariant."""

    def __init__(
        self,
        message: str,
        *,
        group_key: Optional[str] = None,
        typology: Optional[str] = None,
        record_count: Optional[int] = None,
    ):
        super().__init__(message)
        self.group_key = group_key
        self.typology = typology
        self.record_count = record_count

    def context(self) -> Dict[str, Any]:
        return {
            "groupKey": self.group_key,
            "typology": self.typology,
            "recordCount": self.record_count,
        }


class TransformationError(BookingError):
    """A strategy could not transform a group."""

    def __init__(
        self,
        message: str,
        *,
        typology: Optional[str] = None,
        field_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.typology = typology
        self.field_name = field_name
        if cause is not None:
            self.__cause__ = cause

    def context(self) -> Dict[str, Any]:
        return {"transformationType": self.typology, "fieldName": self.field_name}


class MappingError(BookingError):
    """Field lookup or type conversion failed inside the field utilities."""

    def __init__(self, message: str, *, field_path: Optional[str] = None):
        super().__init__(message)
        self.field_path = field_path

    def context(self) -> Dict[str, Any]:
        return {"fieldName": self.field_path}


class BusinessError(BookingError):
    """A business invariant failed outside normal group validation."""


class DataAccessError(BookingError):
    """The data source or staging sink failed."""


class PublishError(BookingError):
    """A trade could not be delivered downstream."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
