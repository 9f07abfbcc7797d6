"""Faker backed anonymizer.

Fake values are generated once in python, stored in a temporary sample
table, then picked by the UPDATE statement itself through a correlated
subquery. No row is ever read back into python.
"""

import logging
from typing import List, Optional

from faker import Faker
from sqlalchemy import Column, Integer, MetaData, String, Table, select

from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.errors import ConfigurationError
from dbanonimize.query import UpdateQuery

logger = logging.getLogger(__name__)


class FakerAnonymizer(AbstractAnonymizer):
    """Replace values with fake data generated by Faker.

    Options:
        provider: Faker provider method, e.g. "name", "city" (required).
        sample_size: Number of distinct fake values (default: 500).
        locale: Faker locale (default: "en_US").
        seed: Seed for reproducible samples.
        key: Integer column used to pick a sample row (default: "id").

    Example:
        >>> config = {"users": {"name": {"anonymizer": "faker",
        ...                               "options": {"provider": "name"}}}}
    """

    NAME = "faker"

    DEFAULT_SAMPLE_SIZE = 500

    def __init__(self, *args, **kwargs):
        self._sample_table: Optional[Table] = None
        super().__init__(*args, **kwargs)

    def validate_options(self) -> None:
        errors = []
        provider = self.options.get("provider")
        if not isinstance(provider, str) or not provider:
            errors.append("'provider' is required")
        elif not hasattr(Faker(), provider):
            errors.append(f"unknown Faker provider '{provider}'")

        sample_size = self.options.get("sample_size", self.DEFAULT_SAMPLE_SIZE)
        if not isinstance(sample_size, int) or sample_size < 1:
            errors.append("'sample_size' must be a positive integer")

        if errors:
            raise ConfigurationError(
                f"Invalid options for target '{self.table_name}.{self.column_name}'",
                errors,
            )

    @property
    def sample_size(self) -> int:
        return self.options.get("sample_size", self.DEFAULT_SAMPLE_SIZE)

    def _generate_samples(self) -> List[str]:
        faker = Faker(self.options.get("locale", "en_US"))
        if self.options.get("seed") is not None:
            faker.seed_instance(self.options["seed"])

        generate = getattr(faker, self.options["provider"])
        return [str(generate()) for _ in range(self.sample_size)]

    def initialize(self) -> None:
        """Create and fill the temporary sample table."""
        table = Table(
            self.generate_temp_table_name(),
            MetaData(),
            Column("id", Integer, primary_key=True),
            Column("value", String(255)),
        )
        table.create(self.connection)
        self._sample_table = table

        self.connection.execute(
            table.insert(),
            [
                {"id": index, "value": value}
                for index, value in enumerate(self._generate_samples(), start=1)
            ],
        )
        self.connection.commit()
        logger.debug(
            f"Created sample table '{table.name}' with {self.sample_size} rows "
            f"for '{self.table_name}.{self.column_name}'"
        )

    def anonymize(self, query: UpdateQuery) -> None:
        if self._sample_table is None:
            raise RuntimeError("FakerAnonymizer.initialize() was not called")

        sample = self._sample_table
        position = query.key_modulo(self.options.get("key", "id"), self.sample_size)
        query.set(
            self.column_name,
            select(sample.c.value)
            .where(sample.c.id == position + 1)
            .scalar_subquery(),
        )

    def clean(self) -> None:
        """Drop the temporary sample table."""
        if self._sample_table is None:
            return

        self._sample_table.drop(self.connection, checkfirst=True)
        self.connection.commit()
        logger.debug(f"Dropped sample table '{self._sample_table.name}'")
        self._sample_table = None
