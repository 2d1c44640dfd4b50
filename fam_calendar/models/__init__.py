from fam_calendar.models.connection import CalendarConnection
from fam_calendar.models.contact import Contact
from fam_calendar.models.external_event import ExternalEvent
from fam_calendar.models.family import Family, FamilyMember
from fam_calendar.models.family_event import FamilyEvent
from fam_calendar.models.feed import CalendarFeed, RetiredFeedToken
from fam_calendar.models.goal import Goal
from fam_calendar.models.meal import Meal
from fam_calendar.models.subscription import VISIBILITIES, CalendarSubscription
from fam_calendar.models.task import Task

__all__ = [
    "CalendarConnection",
    "CalendarFeed",
    "CalendarSubscription",
    "Contact",
    "ExternalEvent",
    "Family",
    "FamilyEvent",
    "FamilyMember",
    "Goal",
    "Meal",
    "RetiredFeedToken",
    "Task",
    "VISIBILITIES",
]
