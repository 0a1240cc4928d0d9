from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple


class Section(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"


class SchoolClass(str, Enum):
    # Primary section (order matters: promotion and reports follow it)
    CRECHE = "creche"
    TENDER_LOVE_1 = "tender_love_1"
    TENDER_LOVE_2 = "tender_love_2"
    NURSERY_1 = "nursery_1"
    NURSERY_2 = "nursery_2"
    PRIMARY_1 = "primary_1"
    PRIMARY_2 = "primary_2"
    PRIMARY_3 = "primary_3"
    PRIMARY_4 = "primary_4"
    PRIMARY_5 = "primary_5"

    # Secondary section
    JSS_1 = "jss_1"
    JSS_2 = "jss_2"
    JSS_3 = "jss_3"
    SSS_1 = "sss_1"
    SSS_2 = "sss_2"
    SSS_3 = "sss_3"


PRIMARY_CLASSES: Tuple[SchoolClass, ...] = (
    SchoolClass.CRECHE,
    SchoolClass.TENDER_LOVE_1,
    SchoolClass.TENDER_LOVE_2,
    SchoolClass.NURSERY_1,
    SchoolClass.NURSERY_2,
    SchoolClass.PRIMARY_1,
    SchoolClass.PRIMARY_2,
    SchoolClass.PRIMARY_3,
    SchoolClass.PRIMARY_4,
    SchoolClass.PRIMARY_5,
)

SECONDARY_CLASSES: Tuple[SchoolClass, ...] = (
    SchoolClass.JSS_1,
    SchoolClass.JSS_2,
    SchoolClass.JSS_3,
    SchoolClass.SSS_1,
    SchoolClass.SSS_2,
    SchoolClass.SSS_3,
)

ALL_CLASSES: Tuple[SchoolClass, ...] = PRIMARY_CLASSES + SECONDARY_CLASSES

# Graduation tier: students here leave the school at promotion time
TERMINAL_CLASS = SchoolClass.SSS_3

_LABELS: Dict[SchoolClass, str] = {
    SchoolClass.CRECHE: "Creche",
    SchoolClass.TENDER_LOVE_1: "Tender Love 1",
    SchoolClass.TENDER_LOVE_2: "Tender Love 2",
    SchoolClass.NURSERY_1: "Nursery 1",
    SchoolClass.NURSERY_2: "Nursery 2",
    SchoolClass.PRIMARY_1: "Primary 1",
    SchoolClass.PRIMARY_2: "Primary 2",
    SchoolClass.PRIMARY_3: "Primary 3",
    SchoolClass.PRIMARY_4: "Primary 4",
    SchoolClass.PRIMARY_5: "Primary 5",
    SchoolClass.JSS_1: "JSS 1",
    SchoolClass.JSS_2: "JSS 2",
    SchoolClass.JSS_3: "JSS 3",
    SchoolClass.SSS_1: "SSS 1",
    SchoolClass.SSS_2: "SSS 2",
    SchoolClass.SSS_3: "SSS 3",
}

_ORDER = {c: i for i, c in enumerate(ALL_CLASSES)}


def parse_class(value) -> Optional[SchoolClass]:
    """Resolve a class from its value ("primary_1") or label ("Primary 1").

    Returns None for anything outside the closed enumeration.
    """
    if isinstance(value, SchoolClass):
        return value
    if value is None:
        return None
    text = str(value).strip().lower()
    if not text:
        return None
    try:
        return SchoolClass(text)
    except ValueError:
        pass
    for cls, label in _LABELS.items():
        if label.lower() == text:
            return cls
    return None


def class_label(value) -> str:
    cls = parse_class(value)
    if cls is None:
        return str(value or "")
    return _LABELS[cls]


def section_of(value) -> Optional[Section]:
    cls = parse_class(value)
    if cls is None:
        return None
    return Section.PRIMARY if cls in PRIMARY_CLASSES else Section.SECONDARY


def class_order(value) -> int:
    """Sort key following the enumeration; unknown classes sort last."""
    cls = parse_class(value)
    if cls is None:
        return len(ALL_CLASSES)
    return _ORDER[cls]


def sort_classes(values: Iterable) -> List:
    return sorted(values, key=class_order)


def is_terminal(value) -> bool:
    return parse_class(value) == TERMINAL_CLASS


def requires_manual_promotion(value, manual_classes: Iterable[str] = ("creche",)) -> bool:
    cls = parse_class(value)
    if cls is None:
        return False
    manual = {parse_class(c) for c in manual_classes}
    return cls in manual


def next_class(current) -> Optional[SchoolClass]:
    """Return the class a student moves into at the end of the session.

    Primary 5 feeds into JSS 1. The terminal class (SSS 3) returns None to
    indicate graduation; unknown classes return None as well.
    """
    cls = parse_class(current)
    if cls is None or cls == TERMINAL_CLASS:
        return None
    return ALL_CLASSES[_ORDER[cls] + 1]


def default_fee_schedule() -> List[Dict[str, object]]:
    """Fee rows seeded into a freshly created term.

    Returning fee by tier; new intake pays a premium on top
    (15 000 in the primary section, 20 000 in the secondary section).
    """
    rows: List[Dict[str, object]] = []
    for cls in PRIMARY_CLASSES:
        if cls == SchoolClass.CRECHE:
            base = Decimal("85000")
        elif cls.value.startswith("tender"):
            base = Decimal("90000")
        elif cls.value.startswith("nursery"):
            base = Decimal("95000")
        else:
            base = Decimal("100000")
        rows.append({"class_name": cls.value, "new_intake_fee": base + 15000, "returning_fee": base})
    for cls in SECONDARY_CLASSES:
        base = Decimal("120000") if cls.value.startswith("jss") else Decimal("150000")
        rows.append({"class_name": cls.value, "new_intake_fee": base + 20000, "returning_fee": base})
    return rows
