"""Anonymizers: base class, registry and bundled implementations."""

from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.anonymizers.core import (
    ConstantAnonymizer,
    EmailAnonymizer,
    IntegerRangeAnonymizer,
    Md5Anonymizer,
    NullAnonymizer,
)
from dbanonimize.anonymizers.fake import FakerAnonymizer
from dbanonimize.anonymizers.registry import AnonymizerRegistry, default_registry

__all__ = [
    "AbstractAnonymizer",
    "AnonymizerRegistry",
    "default_registry",
    "NullAnonymizer",
    "ConstantAnonymizer",
    "EmailAnonymizer",
    "Md5Anonymizer",
    "IntegerRangeAnonymizer",
    "FakerAnonymizer",
]
