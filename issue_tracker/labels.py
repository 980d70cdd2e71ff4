"""Greek display labels for enums and dates."""

from datetime import datetime
from typing import Optional

STATUS_LABELS = {
    "PENDING": "Εκκρεμή",
    "IN_PROGRESS": "Σε εξέλιξη",
    "COMPLETED": "Ολοκληρωμένα",
    "REJECTED": "Απορριφθέντα",
    "CANCELLED": "Ακυρωμένα",
}

PRIORITY_LABELS = {
    "LOW": "Χαμηλή",
    "MEDIUM": "Μεσαία",
    "HIGH": "Υψηλή",
    "EMERGENCY": "Επείγον",
}

MONTH_NAMES = [
    "Ιανουάριος", "Φεβρουάριος", "Μάρτιος", "Απρίλιος", "Μάιος", "Ιούνιος",
    "Ιούλιος", "Αύγουστος", "Σεπτέμβριος", "Οκτώβριος", "Νοέμβριος", "Δεκέμβριος",
]

YES = "Ναι"
NO = "Όχι"


def _key(value) -> str:
    return getattr(value, "value", value)


def translate_status(status) -> str:
    return STATUS_LABELS.get(_key(status), _key(status))


def translate_priority(priority) -> str:
    return PRIORITY_LABELS.get(_key(priority), _key(priority))


def month_label(year: int, month: int) -> str:
    return f"{MONTH_NAMES[month - 1]} {year}"


def format_date(value: Optional[datetime]) -> str:
    return value.strftime("%d/%m/%Y") if value else ""
