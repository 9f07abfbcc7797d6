"""Base anonymizer class.

This module defines the abstract base class that all anonymizers must implement.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy.engine import Connection

from dbanonimize.query import UpdateQuery

logger = logging.getLogger(__name__)


class AbstractAnonymizer(ABC):
    """Abstract base class for all anonymizers.

    An anonymizer is bound to one table target (column) for the time the
    anonymizator processes that table. Its lifecycle is:

    1. construction, which must not touch the database;
    2. ``initialize()``, called once, may create temporary tables;
    3. ``anonymize(query)``, called once per UPDATE statement it takes part in;
    4. ``clean()``, called once, even when a previous step failed.

    Temporary tables must be named with :attr:`TEMP_TABLE_PREFIX` so that
    ``Anonymizator.clean()`` can find them if ``clean()`` never ran.

    Attributes:
        NAME: Name under which the anonymizer is registered.
        table_name: Table this anonymizer is bound to.
        column_name: Target (column) this anonymizer is bound to.
        connection: Connection shared with the anonymizator.
        options: Anonymizer specific options.

    Example:
        >>> class NullAnonymizer(AbstractAnonymizer):
        ...     NAME = "null"
        ...     def anonymize(self, query):
        ...         query.set(self.column_name, None)
    """

    NAME: str = ""

    TEMP_TABLE_PREFIX = "_db_tools_"

    def __init__(
        self,
        table_name: str,
        column_name: str,
        connection: Connection,
        options: Optional[Dict[str, Any]] = None,
    ):
        self.table_name = table_name
        self.column_name = column_name
        self.connection = connection
        self.options = dict(options or {})
        self.validate_options()
        logger.debug(
            f"{self.__class__.__name__} created for '{table_name}.{column_name}'"
        )

    def validate_options(self) -> None:
        """Check options, raising ConfigurationError when they are invalid."""

    def initialize(self) -> None:
        """Prepare anything the anonymizer needs before updating the table."""

    @abstractmethod
    def anonymize(self, query: UpdateQuery) -> None:
        """Contribute to the UPDATE statement of the table.

        Implementations add SET clauses (and WHERE conditions if they really
        need to) on the shared query; they must not execute it, nor assume
        they are its only contributor.

        Args:
            query: UPDATE statement being built for :attr:`table_name`.
        """
        pass

    def clean(self) -> None:
        """Drop everything ``initialize()`` created."""

    def get_table_name(self) -> str:
        return self.table_name

    def get_column_name(self) -> str:
        return self.column_name

    @classmethod
    def generate_temp_table_name(cls) -> str:
        """Generate a unique temporary table name using the reserved prefix."""
        return f"{cls.TEMP_TABLE_PREFIX}{uuid.uuid4().hex[:16]}"
