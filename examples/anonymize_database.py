#!/usr/bin/env python3
"""Example: Anonymize database tables in place.

This example creates a SQLite database for demonstration, but the same code
works with PostgreSQL and MySQL by changing the connection string.
"""

import tempfile
from pathlib import Path

from sqlalchemy import Column, Integer, String, Text, create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker

from dbanonimize import Anonymizator, ArrayLoader

Base = declarative_base()


class User(Base):
    """Example User table."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    name = Column(String(100))
    email = Column(String(100))
    age = Column(Integer)


class Order(Base):
    """Example Order table."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer)
    shipping_address = Column(Text)


CONFIG = {
    "users": {
        "name": {"anonymizer": "faker", "options": {"provider": "name", "seed": 42}},
        "email": "email",
        "age": {"anonymizer": "integer", "options": {"min": 18, "max": 90}},
    },
    "orders": {
        "shipping_address": {"anonymizer": "faker", "options": {"provider": "address"}},
    },
}


def setup_database(db_path: str) -> None:
    """Create sample database with test data.

    Args:
        db_path: Path to SQLite database file.
    """
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)

    Session = sessionmaker(bind=engine)
    with Session() as session:
        session.add_all([
            User(name="John Doe", email="john@example.com", age=34),
            User(name="Jane Smith", email="jane@company.org", age=41),
            User(name="Bob Johnson", email="bob@test.net", age=27),
        ])
        session.add_all([
            Order(user_id=1, shipping_address="123 Main St, New York, NY"),
            Order(user_id=2, shipping_address="456 Oak Ave, Los Angeles, CA"),
        ])
        session.commit()

    engine.dispose()


def main():
    with tempfile.TemporaryDirectory() as tmp:
        db_path = str(Path(tmp) / "example.db")
        setup_database(db_path)

        engine = create_engine(f"sqlite:///{db_path}")
        with engine.connect() as connection:
            anonymizator = Anonymizator("example", connection, loader=ArrayLoader(CONFIG))

            print(f"Anonymizing {anonymizator.count()} tables:\n")
            for line in anonymizator.anonymize():
                print(line)

            print("\nUsers after anonymization:")
            for row in connection.execute(text("SELECT id, name, email, age FROM users")):
                print(f"  {tuple(row)}")

            leftovers = list(anonymizator.clean())
            print(f"\nLeft-over temporary tables: {len(leftovers)}")

        engine.dispose()


if __name__ == "__main__":
    main()
