"""Tests for the Anonymizator engine."""

from unittest.mock import Mock

import pytest
from sqlalchemy import inspect, text

from dbanonimize.anonymizator import Anonymizator
from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.anonymizers.core import ConstantAnonymizer
from dbanonimize.config import AnonymizationConfig, ArrayLoader
from dbanonimize.errors import (
    CleanupError,
    ConfigurationError,
    ExecutionError,
    StrategyLifecycleError,
    UnknownAnonymizerError,
    UsageError,
)


def steps(journal, step):
    return [(table, column) for name, table, column in journal if name == step]


@pytest.fixture
def anonymizator(connection, registry, recording_loader):
    return Anonymizator("default", connection, registry, recording_loader())


class TestConfiguration:
    """Test configuration access."""

    def test_count_loads_lazily_once(self, connection, registry):
        """Test that the configuration is loaded on first use and cached."""
        config = AnonymizationConfig()
        loader = Mock()
        loader.load.return_value = config

        anonymizator = Anonymizator("default", connection, registry, loader)
        loader.load.assert_not_called()

        assert anonymizator.count() == 0
        assert anonymizator.count() == 0
        assert anonymizator.get_anonymization_config() is config
        loader.load.assert_called_once()

    def test_count(self, anonymizator):
        """Test counting configured tables."""
        assert anonymizator.count() == 2

    def test_connection_name(self, anonymizator):
        """Test the connection name accessor."""
        assert anonymizator.get_connection_name() == "default"


class TestAnonymize:
    """Test the anonymization run."""

    def test_is_lazy(self, anonymizator, journal, updates):
        """Test that nothing runs before the iterator is consumed."""
        lines = anonymizator.anonymize()

        assert journal == []
        assert updates() == []

        assert next(lines).startswith(" * table 1/2")
        assert steps(journal, "initialize") == []

    def test_progress_lines_at_once(self, anonymizator):
        """Test the progress lines of one table in combined mode."""
        lines = list(anonymizator.anonymize(only_targets=["users"]))

        assert lines[0] == ' * table 1/1: "users" ("email", "name")'
        assert lines[1] == "   - initializing anonymizers..."
        assert lines[2].startswith("time: ")
        assert lines[3] == "   - anonymizing..."
        assert lines[4].startswith("time: ")
        assert lines[5] == "   - cleaning anonymizers..."
        assert lines[6].startswith("time: ")
        assert lines[7].startswith("   - total time: ")
        assert ", mem: " in lines[7]
        assert len(lines) == 8

    def test_progress_lines_per_column(self, anonymizator):
        """Test the per target progress lines in per-column mode."""
        lines = list(anonymizator.anonymize(only_targets=["users"], at_once=False))

        assert '   - anonymizing 1/2: "users"."email"...' in lines
        assert '   - anonymizing 2/2: "users"."name"...' in lines
        assert "   - anonymizing..." not in lines

    def test_only_single_target(self, anonymizator, connection, journal, updates):
        """Test that only the selected target of the selected table is updated."""
        lines = list(anonymizator.anonymize(only_targets=["users.email"]))

        assert lines[0] == ' * table 1/1: "users" ("email")'
        assert not any('"orders"' in line or '"name"' in line for line in lines)

        executed = updates()
        assert len(executed) == 1
        assert "users" in executed[0]
        assert "orders" not in executed[0]

        rows = connection.execute(text("SELECT email, name FROM users ORDER BY id")).all()
        assert rows[0] == ("anon-email", "John Doe")
        assert {email for email, _ in rows} == {"anon-email"}
        assert steps(journal, "initialize") == [("users", "email")]

    def test_exclude_per_column(self, anonymizator, connection, updates):
        """Test one UPDATE per target, in configuration order."""
        list(anonymizator.anonymize(excluded_targets=["orders"], at_once=False))

        executed = updates()
        assert len(executed) == 2
        assert "SET email" in executed[0]
        assert "SET name" in executed[1]

        notes = connection.execute(text("SELECT note FROM orders ORDER BY id")).scalars().all()
        assert notes == ["call John", "ship to Jane"]

    def test_at_once_one_update_per_table(self, anonymizator, connection, updates):
        """Test that combined mode runs exactly one UPDATE per table."""
        list(anonymizator.anonymize())

        executed = updates()
        assert len(executed) == 2
        assert "email" in executed[0] and "name" in executed[0]
        assert "orders" in executed[1]

        row = connection.execute(text("SELECT email, name FROM users WHERE id = 2")).one()
        assert row == ("anon-email", "anon-name")

    def test_per_column_one_update_per_target(self, anonymizator, updates):
        """Test that per-column mode runs one UPDATE per planned target."""
        list(anonymizator.anonymize(at_once=False))

        assert len(updates()) == 3

    def test_both_filters_fail_before_database(self, anonymizator, journal, statements):
        """Test that mutually exclusive filters raise at call time."""
        before = len(statements)

        with pytest.raises(UsageError):
            anonymizator.anonymize(excluded_targets=["a"], only_targets=["b"])

        assert len(statements) == before
        assert journal == []

    def test_unknown_anonymizer_fails_before_database(self, connection, registry, journal, updates):
        """Test that unknown anonymizers of any planned table raise at call time."""
        loader = ArrayLoader(
            {
                "users": {"email": {"anonymizer": "recording", "options": {"journal": journal}}},
                "orders": {"note": "does_not_exist"},
            }
        )
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(UnknownAnonymizerError):
            anonymizator.anonymize()

        assert journal == []
        assert updates() == []

    def test_lifecycle_order(self, anonymizator, journal):
        """Test initialize, anonymize and clean order within each table."""
        list(anonymizator.anonymize())

        assert journal == [
            ("initialize", "users", "email"),
            ("initialize", "users", "name"),
            ("anonymize", "users", "email"),
            ("anonymize", "users", "name"),
            ("clean", "users", "email"),
            ("clean", "users", "name"),
            ("initialize", "orders", "note"),
            ("anonymize", "orders", "note"),
            ("clean", "orders", "note"),
        ]


class TestFailures:
    """Test cleanup guarantees when something fails."""

    def test_initialize_failure_cleans_every_anonymizer(
        self, connection, registry, recording_loader, journal, updates
    ):
        """Test that a failing initialize still cleans all table anonymizers."""
        loader = recording_loader(fail_on="initialize", fail_target="users.email")
        anonymizator = Anonymizator("default", connection, registry, loader)

        lines = []
        with pytest.raises(StrategyLifecycleError) as excinfo:
            for line in anonymizator.anonymize():
                lines.append(line)

        assert excinfo.value.phase == "initialize"
        assert excinfo.value.target == "email"
        assert steps(journal, "clean") == [("users", "email"), ("users", "name")]
        assert "   - cleaning anonymizers..." in lines
        assert updates() == []
        # The run stops at the failing table.
        assert ("initialize", "orders", "note") not in journal

    def test_anonymize_failure_cleans_every_anonymizer(
        self, connection, registry, recording_loader, journal, updates
    ):
        """Test that a failing anonymizer in per-column mode still cleans siblings."""
        loader = recording_loader(fail_on="anonymize", fail_target="users.name")
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(StrategyLifecycleError) as excinfo:
            list(anonymizator.anonymize(at_once=False))

        assert excinfo.value.phase == "anonymize"
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        assert len(updates()) == 1
        assert steps(journal, "clean") == [("users", "email"), ("users", "name")]

    def test_execution_failure(self, connection, registry, journal):
        """Test that a failing UPDATE raises ExecutionError after cleanup."""
        loader = ArrayLoader(
            {
                "users": {
                    "email": {"anonymizer": "recording", "options": {"journal": journal}},
                    "missing": {"anonymizer": "recording", "options": {"journal": journal}},
                }
            }
        )
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(ExecutionError) as excinfo:
            list(anonymizator.anonymize())

        assert excinfo.value.table == "users"
        assert steps(journal, "clean") == [("users", "email"), ("users", "missing")]
        assert not connection.in_transaction()
        emails = connection.execute(text("SELECT email FROM users")).scalars().all()
        assert "anon-email" not in emails

    def test_failing_statement_in_initialize_is_rolled_back(
        self, connection, registry, journal
    ):
        """Test that a database error while initializing leaves no open transaction."""

        class BrokenSampleAnonymizer(AbstractAnonymizer):
            NAME = "broken_sample"

            def initialize(self):
                self.connection.execute(text("INSERT INTO missing_samples VALUES (1)"))

            def anonymize(self, query):
                query.set(self.column_name, None)

        registry.add(BrokenSampleAnonymizer)
        loader = ArrayLoader(
            {
                "users": {
                    "email": {"anonymizer": "recording", "options": {"journal": journal}},
                    "name": "broken_sample",
                }
            }
        )
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(StrategyLifecycleError) as excinfo:
            list(anonymizator.anonymize())

        assert excinfo.value.phase == "initialize"
        assert excinfo.value.target == "name"
        assert not connection.in_transaction()
        assert steps(journal, "clean") == [("users", "email")]

    def test_construction_failure_runs_nothing(self, connection, registry, journal):
        """Test that invalid options abort the table before any anonymizer starts."""
        registry.add(ConstantAnonymizer)
        loader = ArrayLoader(
            {
                "users": {
                    "email": {"anonymizer": "recording", "options": {"journal": journal}},
                    "name": "constant",
                }
            }
        )
        anonymizator = Anonymizator("default", connection, registry, loader)

        lines = []
        with pytest.raises(ConfigurationError):
            for line in anonymizator.anonymize():
                lines.append(line)

        assert lines == []
        assert steps(journal, "initialize") == []

    def test_both_filters_checked_before_loading(self, connection, registry):
        """Test that filter misuse is reported even if the configuration is broken."""
        loader = Mock()
        loader.load.side_effect = ConfigurationError("Invalid YAML")
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(UsageError):
            anonymizator.anonymize(excluded_targets=["users"], only_targets=["orders"])

        loader.load.assert_not_called()

    def test_clean_failure_does_not_skip_other_cleans(
        self, connection, registry, recording_loader, journal
    ):
        """Test that every clean runs and failures are reported together."""
        loader = recording_loader(fail_on="clean", fail_target="users.email")
        anonymizator = Anonymizator("default", connection, registry, loader)

        lines = []
        with pytest.raises(CleanupError) as excinfo:
            for line in anonymizator.anonymize():
                lines.append(line)

        assert steps(journal, "clean") == [("users", "email"), ("users", "name")]
        assert [target for target, _ in excinfo.value.failures] == ["email"]
        assert lines[-1].startswith("   - total ")
        assert ("initialize", "orders", "note") not in journal

    def test_body_error_wins_over_clean_failure(self, connection, registry, journal):
        """Test that the table error propagates when cleaning fails as well."""
        loader = ArrayLoader(
            {
                "users": {
                    "email": {
                        "anonymizer": "recording",
                        "options": {"journal": journal, "fail_on": "clean"},
                    },
                    "name": {
                        "anonymizer": "recording",
                        "options": {"journal": journal, "fail_on": "initialize"},
                    },
                }
            }
        )
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(StrategyLifecycleError) as excinfo:
            list(anonymizator.anonymize())

        assert not isinstance(excinfo.value, CleanupError)
        assert excinfo.value.phase == "initialize"
        assert steps(journal, "clean") == [("users", "email"), ("users", "name")]

    def test_clean_failure_is_logged(
        self, connection, registry, recording_loader, caplog
    ):
        """Test that clean failures are logged as they happen."""
        loader = recording_loader(fail_on="clean", fail_target="users.email")
        anonymizator = Anonymizator("default", connection, registry, loader)

        with pytest.raises(CleanupError):
            list(anonymizator.anonymize())

        assert "Failed to clean anonymizer for 'users.email'" in caplog.text

    def test_closing_mid_table_cleans(self, anonymizator, journal):
        """Test that abandoning the iterator inside a table still cleans it."""
        lines = anonymizator.anonymize()
        next(lines)  # header
        next(lines)  # initializing
        next(lines)  # initialization time

        lines.close()

        assert steps(journal, "initialize") == [("users", "email"), ("users", "name")]
        assert steps(journal, "anonymize") == []
        assert steps(journal, "clean") == [("users", "email"), ("users", "name")]


class TestClean:
    """Test the temporary table sweeper."""

    @pytest.fixture
    def leftovers(self, connection):
        connection.execute(text("CREATE TABLE _db_tools_0123abcd (id INTEGER)"))
        connection.execute(text("CREATE TABLE _db_tools_sample (value TEXT)"))
        connection.execute(text("CREATE TABLE db_tools_keep (id INTEGER)"))
        connection.commit()

    def table_names(self, connection):
        return set(inspect(connection).get_table_names())

    def test_dry_run(self, anonymizator, connection, leftovers, statements):
        """Test that dry run lists temporary tables without dropping them."""
        lines = list(anonymizator.clean())

        assert sorted(lines) == ["table: _db_tools_0123abcd", "table: _db_tools_sample"]
        assert not any(s.upper().startswith("DROP") for s in statements)
        assert {"_db_tools_0123abcd", "_db_tools_sample"} <= self.table_names(connection)

    def test_drop(self, anonymizator, connection, leftovers):
        """Test that temporary tables are dropped and others are kept."""
        lines = list(anonymizator.clean(dry_run=False))

        assert len(lines) == 2
        assert self.table_names(connection) == {"users", "orders", "db_tools_keep"}

    def test_yields_before_dropping(self, anonymizator, connection, leftovers):
        """Test that each table is reported before it is dropped."""
        lines = anonymizator.clean(dry_run=False)

        name = next(lines)[len("table: "):]
        assert name in self.table_names(connection)

        next(lines)
        assert name not in self.table_names(connection)

    def test_nothing_to_clean(self, anonymizator):
        """Test that nothing is yielded without temporary tables."""
        assert list(anonymizator.clean(dry_run=False)) == []
