from typing import List, Optional

from sqlalchemy.orm import Session

from libledger.core.database import atomic
from libledger.core.errors import InvalidInput, NotFound
from libledger.core.log import get_logger
from libledger.models.models import Person

logger = get_logger("people")


def register_person(db: Session, person_id: str, full_name: str, email: Optional[str] = None) -> Person:
    person_id = person_id.strip()
    if not person_id or not full_name.strip():
        raise InvalidInput("person_id and full_name are required")
    with atomic(db):
        if db.get(Person, person_id) is not None:
            raise InvalidInput(f"Person {person_id} already registered")
        person = Person(person_id=person_id, full_name=full_name.strip(), email=email)
        db.add(person)
    db.refresh(person)
    logger.info(f"Registered person {person.person_id} name={person.full_name}")
    return person


def get_person(db: Session, person_id: str) -> Person:
    person = db.get(Person, person_id)
    if person is None:
        raise NotFound(f"Person {person_id} not found")
    return person


def display_name(db: Session, person_id: str) -> Optional[str]:
    person = db.get(Person, person_id)
    return person.full_name if person else None


def list_people(db: Session, skip: int = 0, limit: int = 50) -> List[Person]:
    return db.query(Person).order_by(Person.full_name).offset(skip).limit(limit).all()
