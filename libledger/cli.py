"""Small maintenance utilities: create tables and seed sample data."""

import argparse

from libledger.core.database import Base, SessionLocal, engine
from libledger.core.log import get_logger, setup_logging
from libledger.models.models import Book, Person

logger = get_logger("cli")

SAMPLE_PEOPLE = [
    dict(person_id="2024-0001", full_name="Alice Reader", email="alice@example.com"),
    dict(person_id="2024-0002", full_name="Bob Scholar", email="bob@example.com"),
]

SAMPLE_BOOKS = [
    dict(title="Noli Me Tangere", author="Jose Rizal", category="Literature",
         isbn="978-9715080000", total_copies=3, available_copies=3),
    dict(title="Designing Data-Intensive Applications", author="Martin Kleppmann",
         category="Computing", isbn="978-1449373320", total_copies=2, available_copies=2),
]


def seed(db) -> None:
    # idempotent: only fills empty tables
    if db.query(Person).count() == 0:
        db.add_all([Person(**fields) for fields in SAMPLE_PEOPLE])
    if db.query(Book).count() == 0:
        db.add_all([Book(**fields) for fields in SAMPLE_BOOKS])
    db.commit()


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Library lending ledger utilities")
    parser.add_argument("--initdb", action="store_true", help="Create tables")
    parser.add_argument("--seed", action="store_true", help="Seed sample data")
    args = parser.parse_args(argv)
    setup_logging()
    Base.metadata.create_all(bind=engine)
    if args.seed:
        db = SessionLocal()
        try:
            seed(db)
            logger.info("Seeded sample data")
        finally:
            db.close()
    print("Done")


if __name__ == "__main__":
    main()
