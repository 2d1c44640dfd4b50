"""Birthday occurrences of family members and contacts within a date range."""
import calendar
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlmodel import Session, select

from fam_calendar.models import Contact, FamilyMember

FAMILY_MEMBER = "family_member"
CONTACT = "contact"


@dataclass(frozen=True)
class Birthday:
    """A birthday falling inside a requested range.

    ``display_date`` is the occurrence in the range's year, which for a
    Feb 29 birthday is Feb 28 in non-leap years.
    """

    source_type: str
    source_id: UUID
    name: str
    birthday_date: date
    display_date: date
    age_turning: int


def occurrence_in_year(birthday: date, year: int) -> date:
    if birthday.month == 2 and birthday.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return birthday.replace(year=year)


def birthdays_in_range(
    members: list[FamilyMember],
    contacts: list[Contact],
    start: date,
    end: date,
) -> list[Birthday]:
    """Every birthday occurrence with ``start <= display_date <= end``.

    Ranges spanning a new year yield one occurrence per year covered.
    Deleted contacts and people without a birthday are skipped.
    """
    people = [(FAMILY_MEMBER, m.id, m.name, m.birthday) for m in members]
    people += [
        (CONTACT, c.id, c.name, c.birthday) for c in contacts if c.deleted_at is None
    ]

    results = []
    for source_type, source_id, name, born in people:
        if born is None:
            continue
        for year in range(start.year, end.year + 1):
            display_date = occurrence_in_year(born, year)
            if start <= display_date <= end and year >= born.year:
                results.append(
                    Birthday(
                        source_type=source_type,
                        source_id=source_id,
                        name=name,
                        birthday_date=born,
                        display_date=display_date,
                        age_turning=year - born.year,
                    )
                )
    results.sort(key=lambda b: (b.display_date, b.name))
    return results


def fetch_birthdays(session: Session, family_id: UUID, start: date, end: date) -> list[Birthday]:
    """Load the family's members and contacts and compute birthdays in range."""
    members = session.exec(
        select(FamilyMember)
        .where(FamilyMember.family_id == family_id)
        .where(FamilyMember.birthday != None)  # noqa: E711
    ).all()
    contacts = session.exec(
        select(Contact)
        .where(Contact.family_id == family_id)
        .where(Contact.birthday != None)  # noqa: E711
        .where(Contact.deleted_at == None)  # noqa: E711
    ).all()
    return birthdays_in_range(list(members), list(contacts), start, end)
