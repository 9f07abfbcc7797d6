"""Anonymization engine.

This module contains the Anonymizator class that orchestrates the in-place
anonymization of the configured database tables.
"""

import logging
from typing import Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import MetaData, Table, inspect
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.anonymizers.registry import AnonymizerRegistry, default_registry
from dbanonimize.config import AnonymizationConfig, AnonymizationSingleConfig, BaseLoader
from dbanonimize.errors import (
    AnonimizeError,
    CleanupError,
    ExecutionError,
    StrategyLifecycleError,
)
from dbanonimize.plan import Plan, build_plan, check_filters
from dbanonimize.query import UpdateQuery
from dbanonimize.utils import Timer

logger = logging.getLogger(__name__)


class Anonymizator:
    """Orchestrates the anonymization of every configured table.

    For each planned table, the anonymizator creates one anonymizer per
    target, initializes them, runs the UPDATE statement(s) and always cleans
    the anonymizers afterwards. Progress is reported as a lazy sequence of
    text lines: nothing happens until the caller iterates over it.

    Attributes:
        connection_name: Name of the connection, for display.
        connection: SQLAlchemy connection shared with the anonymizers.
        registry: Registry used to create anonymizers.
        loader: Loader of the anonymization configuration.

    Example:
        >>> anonymizator = Anonymizator("default", connection, loader=YamlLoader("anon.yaml"))
        >>> for line in anonymizator.anonymize(excluded_targets=["orders"]):
        ...     print(line)
    """

    def __init__(
        self,
        connection_name: str,
        connection: Connection,
        registry: Optional[AnonymizerRegistry] = None,
        loader: Optional[BaseLoader] = None,
    ):
        self.connection_name = connection_name
        self.connection = connection
        self.registry = registry or default_registry()
        self.loader = loader
        self._config: Optional[AnonymizationConfig] = None

    def load_configuration(self) -> AnonymizationConfig:
        if self.loader is None:
            raise AnonimizeError(
                "No anonymization configuration loader",
                "Pass a loader, e.g. YamlLoader('anonymization.yaml')",
            )
        self._config = self.loader.load()
        return self._config

    def get_anonymization_config(self) -> AnonymizationConfig:
        """Get the configuration, loading it on first use."""
        if self._config is None:
            return self.load_configuration()
        return self._config

    def get_connection_name(self) -> str:
        return self.connection_name

    def count(self) -> int:
        """Count configured tables."""
        return self.get_anonymization_config().count()

    def create_anonymizer(self, config: AnonymizationSingleConfig) -> AbstractAnonymizer:
        return self.registry.create(config, self.connection)

    def anonymize(
        self,
        excluded_targets: Optional[Sequence[str]] = None,
        only_targets: Optional[Sequence[str]] = None,
        at_once: bool = True,
    ) -> Iterator[str]:
        """Anonymize all configured database tables.

        Arguments are checked and the plan is computed immediately, so usage
        errors are raised by this call, before the database is touched. The
        anonymization itself runs while the returned iterator is consumed.

        Args:
            excluded_targets: Targets to skip:
                - "TABLE_NAME" for a complete table,
                - "TABLE_NAME.TARGET_NAME" for a single table column.
            only_targets: Targets to process, same format; mutually
                exclusive with ``excluded_targets``.
            at_once: If True, a single UPDATE statement per table anonymizes
                every target; if False, there is one UPDATE per target.

        Returns:
            Iterator over progress messages.

        Raises:
            UsageError: If both filters are given, a selector is invalid or a
                planned target uses an unknown anonymizer.
        """
        check_filters(excluded_targets, only_targets)

        config = self.get_anonymization_config()
        plan = build_plan(config, excluded_targets, only_targets)

        for table, targets in plan.items():
            for single in config.get_table_config_targets(table, targets).values():
                self.registry.get(single.anonymizer)

        logger.info(
            f"Anonymizing {len(plan)} table(s) on '{self.connection_name}' "
            f"({'at once' if at_once else 'per column'})"
        )
        return self._anonymize_plan(plan, at_once)

    def _anonymize_plan(self, plan: Plan, at_once: bool) -> Iterator[str]:
        config = self.get_anonymization_config()
        total = len(plan)

        for count, (table, targets) in enumerate(plan.items(), start=1):
            init_timer = Timer()

            # Create every anonymizer prior running anything.
            anonymizers = [
                self.create_anonymizer(single)
                for single in config.get_table_config_targets(table, targets).values()
            ]

            try:
                names = '", "'.join(targets)
                yield f' * table {count}/{total}: "{table}" ("{names}")'
                yield "   - initializing anonymizers..."
                for anonymizer in anonymizers:
                    self._run_step(anonymizer, "initialize", anonymizer.initialize)
                yield init_timer.format()

                if at_once:
                    yield from self._anonymize_table_at_once(table, anonymizers)
                else:
                    yield from self._anonymize_table_per_column(table, anonymizers)
            except GeneratorExit:
                # The caller stopped iterating: no more lines can be yielded.
                self._clean_anonymizers(table, anonymizers)
                raise
            except BaseException:
                yield from self._clean_table(table, anonymizers, init_timer, failed=True)
                raise
            else:
                yield from self._clean_table(table, anonymizers, init_timer)

            logger.info(f"Table '{table}' anonymized ({count}/{total})")

    def _clean_table(
        self,
        table: str,
        anonymizers: List[AbstractAnonymizer],
        init_timer: Timer,
        failed: bool = False,
    ) -> Iterator[str]:
        clean_timer = Timer()
        try:
            yield "   - cleaning anonymizers..."
        except GeneratorExit:
            self._clean_anonymizers(table, anonymizers)
            raise
        failures = self._clean_anonymizers(table, anonymizers)
        yield clean_timer.format()
        yield "   - total " + init_timer.format()

        # When the table already failed, its error wins, failures are logged.
        if failures and not failed:
            raise CleanupError(table, failures)

    def _clean_anonymizers(
        self, table: str, anonymizers: List[AbstractAnonymizer]
    ) -> List[Tuple[str, BaseException]]:
        """Clean every anonymizer, even if some of them fail."""
        failures = []
        for anonymizer in anonymizers:
            try:
                anonymizer.clean()
            except Exception as e:
                logger.error(
                    f"Failed to clean anonymizer for '{table}.{anonymizer.get_column_name()}': {e}"
                )
                failures.append((anonymizer.get_column_name(), e))
        return failures

    def _run_step(self, anonymizer: AbstractAnonymizer, phase: str, step, *args) -> None:
        try:
            step(*args)
        except AnonimizeError:
            raise
        except Exception as e:
            if isinstance(e, SQLAlchemyError):
                self._rollback()
            raise StrategyLifecycleError(
                anonymizer.get_table_name(), anonymizer.get_column_name(), phase, e
            ) from e

    def _execute(self, table: str, query: UpdateQuery) -> int:
        try:
            return query.execute()
        except SQLAlchemyError as e:
            self._rollback()
            raise ExecutionError(table, e) from e

    def _rollback(self) -> None:
        """Roll back a failed statement so cleanup can use the connection."""
        if self.connection.in_transaction():
            self.connection.rollback()
            logger.debug("Rolled back the failed transaction")

    def _anonymize_table_at_once(
        self, table: str, anonymizers: List[AbstractAnonymizer]
    ) -> Iterator[str]:
        """Anonymize a table using a single UPDATE statement for all targets."""
        yield "   - anonymizing..."

        timer = Timer()
        query = UpdateQuery(table, self.connection)

        for anonymizer in anonymizers:
            self._run_step(anonymizer, "anonymize", anonymizer.anonymize, query)

        self._execute(table, query)

        yield timer.format()

    def _anonymize_table_per_column(
        self, table: str, anonymizers: List[AbstractAnonymizer]
    ) -> Iterator[str]:
        """Anonymize a table using one UPDATE statement per target."""
        total = len(anonymizers)

        for count, anonymizer in enumerate(anonymizers, start=1):
            timer = Timer()

            yield (
                f'   - anonymizing {count}/{total}: '
                f'"{anonymizer.get_table_name()}"."{anonymizer.get_column_name()}"...'
            )

            query = UpdateQuery(anonymizer.get_table_name(), self.connection)
            self._run_step(anonymizer, "anonymize", anonymizer.anonymize, query)
            self._execute(table, query)

            yield timer.format()

    def clean(self, dry_run: bool = True) -> Iterator[str]:
        """Forcefully clean all left-over temporary tables.

        This can be dangerous if some of your own tables are named like the
        temporary tables anonymizers create, hence dry run being the default.

        Yields:
            "table: <name>" for each temporary table, before it is dropped
            (when not in dry run).
        """
        prefix = AbstractAnonymizer.TEMP_TABLE_PREFIX

        for table_name in inspect(self.connection).get_table_names():
            if not table_name.startswith(prefix):
                continue

            yield f"table: {table_name}"

            if not dry_run:
                Table(table_name, MetaData()).drop(self.connection)
                self.connection.commit()
                logger.warning(f"Dropped left-over temporary table '{table_name}'")
