"""
Database initialization and sample data for the School Library.

Usage:
    school-library-init-db [--drop-existing] [--sample-data] [--database-url URL]

Sample loans are opened (and some returned, renewed or lost) through the
loan state machine with a back-dated clock, so stock counters and loan
rows always agree, exactly as they would after real use.
"""

import argparse
import logging
import random
import sys
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import inspect

from ..config import get_config
from ..loans.state_machine import LoanStateMachine
from ..models.catalog import PersonType, ResourceState, ResourceType
from .exceptions import RepositoryException
from .gateways import PersonGateway, ResourceGateway
from .schema import Person, Resource
from .session import DatabaseManager, get_db_manager

logger = logging.getLogger(__name__)

EXPECTED_TABLES = {"people", "resources", "resource_stock", "loans", "loan_renewals"}

fake = Faker("es_ES")


def generate_people(num_people: int = 40) -> list[Person]:
    """Mostly students across grades, a handful of teachers, a few inactive."""
    people = []
    for i in range(num_people):
        is_teacher = i % 8 == 0
        people.append(
            Person(
                id=f"person_{i + 1:05d}",
                first_name=fake.first_name(),
                last_name=fake.last_name(),
                person_type=PersonType.TEACHER if is_teacher else PersonType.STUDENT,
                document_number=fake.unique.numerify("########"),
                grade=None if is_teacher else f"{random.randint(1, 11)}°",
                active=random.random() > 0.1,
            )
        )
    return people


def generate_resources(num_resources: int = 120) -> list[Resource]:
    resources = []
    for i in range(num_resources):
        resource_type = random.choices(
            list(ResourceType), weights=[80, 8, 7, 5], k=1
        )[0]
        resources.append(
            Resource(
                id=f"resource_{i + 1:05d}",
                title=fake.sentence(nb_words=random.randint(2, 6)).rstrip("."),
                resource_type=resource_type,
                isbn=fake.isbn13(separator="") if resource_type == ResourceType.BOOK else None,
                volumes=random.choice([1, 1, 2, 3, 5, 10]),
                state=random.choices(
                    [ResourceState.GOOD, ResourceState.DETERIORATED, ResourceState.DAMAGED],
                    weights=[80, 15, 5],
                    k=1,
                )[0],
            )
        )
    return resources


def _machine(session, config, moment: datetime) -> LoanStateMachine:
    return LoanStateMachine(
        session,
        PersonGateway(session),
        ResourceGateway(session, lambda: moment),
        config,
        clock=lambda: moment,
    )


def generate_loan_history(db_manager: DatabaseManager, num_loans: int = 60) -> dict[str, int]:
    """Open loans over the last 60 days and settle some of them."""
    config = get_config()
    outcomes = {"created": 0, "returned": 0, "renewed": 0, "lost": 0, "refused": 0}
    start = datetime.now() - timedelta(days=60)

    with db_manager.session_scope() as session:
        person_ids = [row[0] for row in session.query(Person.id).filter(Person.active.is_(True))]
        resource_ids = [row[0] for row in session.query(Resource.id)]

    for day in sorted(random.randint(0, 59) for _ in range(num_loans)):
        moment = start + timedelta(days=day, hours=random.randint(8, 15))
        with db_manager.session_scope() as session:
            machine = _machine(session, config, moment)
            try:
                created = machine.create(random.choice(person_ids), random.choice(resource_ids))
            except RepositoryException as e:
                logger.debug("Sample loan refused: %s", e.message)
                outcomes["refused"] += 1
                continue
            outcomes["created"] += 1

            roll = random.random()
            later = moment + timedelta(days=random.randint(1, 20))
            machine = _machine(session, config, later)
            if roll < 0.5:
                machine.return_loan(created.loan.id)
                outcomes["returned"] += 1
            elif roll < 0.65:
                machine.renew(created.loan.id)
                outcomes["renewed"] += 1
            elif roll < 0.68:
                machine.mark_as_lost(created.loan.id, "Reported lost by the borrower")
                outcomes["lost"] += 1

    return outcomes


def load_sample_data(db_manager: DatabaseManager) -> None:
    Faker.seed(42)
    random.seed(42)

    with db_manager.session_scope() as session:
        people = generate_people()
        resources = generate_resources()
        session.add_all(people)
        session.add_all(resources)

    logger.info("Created %d people and %d resources", len(people), len(resources))
    outcomes = generate_loan_history(db_manager)
    logger.info("Sample loans: %s", outcomes)


def main() -> None:
    """Main entry point for database initialization."""
    logging.basicConfig(
        level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    parser = argparse.ArgumentParser(description="Initialize the School Library database")
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating new ones",
    )
    parser.add_argument(
        "--sample-data",
        action="store_true",
        help="Load sample people, resources and loans after creating tables",
    )
    parser.add_argument("--database-url", help="Override default database URL")
    args = parser.parse_args()

    db_manager = get_db_manager(args.database_url)

    if not db_manager.verify_connection():
        logger.error("Failed to connect to database")
        sys.exit(1)

    try:
        db_manager.init_database(drop_existing=args.drop_existing)

        tables = set(inspect(db_manager.engine).get_table_names())
        missing_tables = EXPECTED_TABLES - tables
        if missing_tables:
            logger.error("Missing expected tables: %s", ", ".join(sorted(missing_tables)))
            sys.exit(1)
        logger.info("Created tables: %s", ", ".join(sorted(tables)))

        if args.sample_data:
            load_sample_data(db_manager)

        logger.info("Database initialization complete")
    except Exception:
        logger.exception("Database initialization failed")
        sys.exit(1)
    finally:
        db_manager.close()


if __name__ == "__main__":
    main()
