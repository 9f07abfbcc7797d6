"""Stateless anonymizers that only contribute SQL expressions.

None of these needs ``initialize()`` or ``clean()``: the whole work is done by
the UPDATE statement they contribute to.
"""

from sqlalchemy import String, cast, func, literal

from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.errors import ConfigurationError
from dbanonimize.query import UpdateQuery


class NullAnonymizer(AbstractAnonymizer):
    """Set the column to NULL."""

    NAME = "null"

    def anonymize(self, query: UpdateQuery) -> None:
        query.set(self.column_name, None)


class ConstantAnonymizer(AbstractAnonymizer):
    """Set the column to a fixed value.

    Options:
        value: The value to write (required, may be null).
    """

    NAME = "constant"

    def validate_options(self) -> None:
        if "value" not in self.options:
            raise ConfigurationError(
                f"Target '{self.table_name}.{self.column_name}': "
                "the 'constant' anonymizer requires a 'value' option"
            )

    def anonymize(self, query: UpdateQuery) -> None:
        query.set(self.column_name, self.options["value"])


class EmailAnonymizer(AbstractAnonymizer):
    """Replace emails with ``anon-<key>@<domain>``.

    The key column keeps generated emails unique when the original column
    carries a unique constraint.

    Options:
        key: Column used to build the local part (default: "id").
        domain: Email domain (default: "example.com").
    """

    NAME = "email"

    def validate_options(self) -> None:
        for option in ("key", "domain"):
            value = self.options.get(option)
            if value is not None and (not isinstance(value, str) or not value):
                raise ConfigurationError(
                    f"Target '{self.table_name}.{self.column_name}': "
                    f"option '{option}' must be a non-empty string"
                )

    def anonymize(self, query: UpdateQuery) -> None:
        key = query.column(self.options.get("key", "id"))
        domain = self.options.get("domain", "example.com")
        query.set(
            self.column_name,
            literal("anon-", String)
            + cast(key, String)
            + literal(f"@{domain}", String),
        )


class Md5Anonymizer(AbstractAnonymizer):
    """Replace the value by its MD5 hash, using the SQL ``md5()`` function.

    Only works with databases providing ``md5()`` (PostgreSQL, MySQL).
    """

    NAME = "md5"

    def anonymize(self, query: UpdateQuery) -> None:
        column = query.column(self.column_name)
        query.set(self.column_name, func.md5(cast(column, String)))


class IntegerRangeAnonymizer(AbstractAnonymizer):
    """Spread integer values into ``[min, max]`` using the key column.

    Options:
        min: Lower bound, inclusive (default: 0).
        max: Upper bound, inclusive (required).
        key: Integer column driving the value (default: "id").
    """

    NAME = "integer"

    def validate_options(self) -> None:
        low = self.options.get("min", 0)
        high = self.options.get("max")
        if not isinstance(low, int) or not isinstance(high, int) or high < low:
            raise ConfigurationError(
                f"Target '{self.table_name}.{self.column_name}': "
                "the 'integer' anonymizer requires integer 'min' <= 'max' options"
            )

    def anonymize(self, query: UpdateQuery) -> None:
        low = self.options.get("min", 0)
        span = self.options["max"] - low + 1
        offset = query.key_modulo(self.options.get("key", "id"), span)
        query.set(self.column_name, offset + low)


BUILTIN_ANONYMIZERS = [
    NullAnonymizer,
    ConstantAnonymizer,
    EmailAnonymizer,
    Md5Anonymizer,
    IntegerRangeAnonymizer,
]
