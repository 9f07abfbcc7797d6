"""Anonymizer registry.

Maps anonymizer names used in the configuration to anonymizer classes and
builds instances bound to a table target.
"""

import inspect
import logging
from typing import Callable, Dict, List, Optional, Type

from sqlalchemy.engine import Connection

from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.config import AnonymizationSingleConfig
from dbanonimize.errors import UnknownAnonymizerError

logger = logging.getLogger(__name__)


class AnonymizerRegistry:
    """Registry of anonymizer classes, keyed by name.

    Classes are validated when they are registered, so that a broken
    anonymizer is rejected before any anonymization starts.

    Example:
        >>> registry = AnonymizerRegistry()
        >>> @registry.register("null")
        ... class NullAnonymizer(AbstractAnonymizer):
        ...     def anonymize(self, query):
        ...         query.set(self.column_name, None)
        >>> registry.has("null")
        True
    """

    def __init__(self):
        self._anonymizers: Dict[str, Type[AbstractAnonymizer]] = {}

    def add(
        self, anonymizer_class: Type[AbstractAnonymizer], name: Optional[str] = None
    ) -> None:
        """Register an anonymizer class.

        Args:
            anonymizer_class: Concrete AbstractAnonymizer subclass.
            name: Registration name, defaults to the class NAME attribute.

        Raises:
            TypeError: If the class does not implement the anonymizer contract.
            ValueError: If the name is empty or already taken.
        """
        if not (
            inspect.isclass(anonymizer_class)
            and issubclass(anonymizer_class, AbstractAnonymizer)
        ):
            raise TypeError(
                f"{anonymizer_class!r} must be a subclass of AbstractAnonymizer"
            )
        if inspect.isabstract(anonymizer_class):
            missing = ", ".join(sorted(anonymizer_class.__abstractmethods__))
            raise TypeError(
                f"{anonymizer_class.__name__} does not implement: {missing}"
            )

        name = name or anonymizer_class.NAME
        if not name:
            raise ValueError(f"{anonymizer_class.__name__} has no anonymizer name")

        existing = self._anonymizers.get(name)
        if existing is not None and existing is not anonymizer_class:
            raise ValueError(
                f"Anonymizer name '{name}' is already used by {existing.__name__}"
            )

        self._anonymizers[name] = anonymizer_class
        logger.debug(f"Registered anonymizer '{name}': {anonymizer_class.__name__}")

    def register(
        self, name: Optional[str] = None
    ) -> Callable[[Type[AbstractAnonymizer]], Type[AbstractAnonymizer]]:
        """Class decorator form of :meth:`add`."""

        def decorator(anonymizer_class):
            self.add(anonymizer_class, name)
            return anonymizer_class

        return decorator

    def has(self, name: str) -> bool:
        return name in self._anonymizers

    def names(self) -> List[str]:
        return list(self._anonymizers)

    def get(self, name: str) -> Type[AbstractAnonymizer]:
        """Get an anonymizer class by name.

        Raises:
            UnknownAnonymizerError: If no anonymizer is registered under ``name``.
        """
        try:
            return self._anonymizers[name]
        except KeyError:
            raise UnknownAnonymizerError(name, self.names()) from None

    def create(
        self, config: AnonymizationSingleConfig, connection: Connection
    ) -> AbstractAnonymizer:
        """Create the anonymizer instance for one target.

        Construction does not touch the database.
        """
        anonymizer_class = self.get(config.anonymizer)
        return anonymizer_class(
            config.table,
            config.target_name,
            connection,
            config.options,
        )


def default_registry() -> AnonymizerRegistry:
    """Create a registry holding every bundled anonymizer."""
    from dbanonimize.anonymizers.core import BUILTIN_ANONYMIZERS
    from dbanonimize.anonymizers.fake import FakerAnonymizer

    registry = AnonymizerRegistry()
    for anonymizer_class in BUILTIN_ANONYMIZERS + [FakerAnonymizer]:
        registry.add(anonymizer_class)
    return registry
