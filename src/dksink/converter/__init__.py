"""Record conversion modules."""

from dksink.converter.descriptor import (
    FieldDescriptor,
    RecordDescriptor,
    build_record_descriptor,
)
from dksink.converter.types import Type, TypeRegistry

__all__ = [
    "FieldDescriptor",
    "RecordDescriptor",
    "Type",
    "TypeRegistry",
    "build_record_descriptor",
]
