"""Shared fixtures: an in-memory SQLite database and test anonymizers."""

import pytest
from sqlalchemy import create_engine, event, text

from dbanonimize.anonymizers.base import AbstractAnonymizer
from dbanonimize.anonymizers.registry import AnonymizerRegistry
from dbanonimize.config import ArrayLoader


class RecordingAnonymizer(AbstractAnonymizer):
    """Anonymizer writing a fixed marker and recording its lifecycle.

    Options:
        journal: list receiving (step, table, column) tuples.
        fail_on: lifecycle step raising RuntimeError.
    """

    NAME = "recording"

    def _record(self, step):
        self.options["journal"].append((step, self.table_name, self.column_name))
        if self.options.get("fail_on") == step:
            raise RuntimeError(f"{step} failed on {self.column_name}")

    def initialize(self):
        self._record("initialize")

    def anonymize(self, query):
        self._record("anonymize")
        query.set(self.column_name, f"anon-{self.column_name}")

    def clean(self):
        self._record("clean")


@pytest.fixture
def engine():
    engine = create_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def connection(engine, statements):
    """Connection to a database holding 'users' and 'orders' tables."""
    with engine.connect() as connection:
        connection.execute(
            text("CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT, name TEXT, age INTEGER)")
        )
        connection.execute(
            text("CREATE TABLE orders (id INTEGER PRIMARY KEY, note TEXT)")
        )
        connection.execute(
            text(
                "INSERT INTO users (id, email, name, age) VALUES "
                "(1, 'john@corp.com', 'John Doe', 34), "
                "(2, 'jane@corp.com', 'Jane Roe', 41), "
                "(3, 'bob@corp.com', 'Bob Smith', 27)"
            )
        )
        connection.execute(
            text("INSERT INTO orders (id, note) VALUES (1, 'call John'), (2, 'ship to Jane')")
        )
        connection.commit()
        yield connection


@pytest.fixture
def statements(engine):
    """Every SQL statement sent to the database, in order."""
    executed = []

    @event.listens_for(engine, "before_cursor_execute")
    def record(conn, cursor, statement, parameters, context, executemany):
        executed.append(statement)

    yield executed
    event.remove(engine, "before_cursor_execute", record)


@pytest.fixture
def updates(statements):
    """Callable returning the UPDATE statements sent so far."""
    return lambda: [s for s in statements if s.lstrip().upper().startswith("UPDATE")]


@pytest.fixture
def journal():
    return []


@pytest.fixture
def registry():
    registry = AnonymizerRegistry()
    registry.add(RecordingAnonymizer)
    return registry


@pytest.fixture
def recording_loader(journal):
    """Loader for users.email, users.name and orders.note, all recorded."""

    def make(fail_on=None, fail_target=None):
        def target(table, column):
            options = {"journal": journal}
            if fail_on and (fail_target is None or fail_target == f"{table}.{column}"):
                options["fail_on"] = fail_on
            return {"anonymizer": "recording", "options": options}

        return ArrayLoader(
            {
                "users": {
                    "email": target("users", "email"),
                    "name": target("users", "name"),
                },
                "orders": {
                    "note": target("orders", "note"),
                },
            }
        )

    return make
