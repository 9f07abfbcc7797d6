"""UPDATE statement builder shared by the anonymizers of one table.

Anonymizers never execute their own UPDATE: they contribute SET clauses and
WHERE conditions to an :class:`UpdateQuery` owned by the anonymizator, which
executes it once every contributor is done.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, Integer, MetaData, Table, update
from sqlalchemy.engine import Connection
from sqlalchemy.sql.elements import ColumnElement

logger = logging.getLogger(__name__)


class UpdateQuery:
    """In-progress UPDATE statement scoped to a single table.

    Identifier quoting is left to the SQLAlchemy dialect of the connection.

    Example:
        >>> query = UpdateQuery("users", connection)
        >>> query.set("email", None)
        >>> query.where(query.column("id") > 10)
        >>> query.execute()
    """

    def __init__(self, table_name: str, connection: Connection):
        self.table_name = table_name
        self.connection = connection
        self.table = Table(table_name, MetaData())
        self._values: Dict[str, Any] = {}
        self._where: List[ColumnElement] = []

    def column(self, name: str, type_: Optional[Any] = None) -> Column:
        """Return the column expression for ``name``, declaring it if needed.

        The first declaration of a column fixes its type.
        """
        if name not in self.table.c:
            if type_ is None:
                self.table.append_column(Column(name))
            else:
                self.table.append_column(Column(name, type_))
        return self.table.c[name]

    def key_modulo(self, name: str, divisor: int) -> ColumnElement:
        """Return ``name`` modulo ``divisor`` as a value in ``[0, divisor)``.

        SQL ``%`` keeps the sign of the dividend, so negative keys are folded
        back into range.
        """
        key = self.column(name, Integer)
        return ((key % divisor) + divisor) % divisor

    def set(self, name: str, value: Any) -> "UpdateQuery":
        """Add a ``SET name = value`` clause.

        Raises:
            ValueError: If another contributor already set this column.
        """
        self.column(name)
        if name in self._values:
            raise ValueError(
                f'Column "{self.table_name}"."{name}" is already anonymized '
                "by another anonymizer in this UPDATE"
            )
        self._values[name] = value
        return self

    def where(self, *conditions: ColumnElement) -> "UpdateQuery":
        """Add conditions, AND-ed with the ones already present."""
        self._where.extend(conditions)
        return self

    def is_empty(self) -> bool:
        return not self._values

    def statement(self):
        """Build the SQLAlchemy UPDATE construct."""
        stmt = update(self.table).values(self._values)
        if self._where:
            stmt = stmt.where(*self._where)
        return stmt

    def execute(self) -> int:
        """Execute and commit the UPDATE.

        Returns:
            Number of affected rows, as reported by the driver.
        """
        if self.is_empty():
            logger.debug(f"Nothing to update on table '{self.table_name}'")
            return 0

        result = self.connection.execute(self.statement())
        self.connection.commit()
        logger.debug(f"UPDATE on '{self.table_name}' affected {result.rowcount} rows")
        return result.rowcount
