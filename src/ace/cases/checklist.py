"""Quality-control checklist an operator works through before finalizing a case."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Tuple


class ChecklistItem(str, Enum):
    """Checks a reviewer confirms against the source documents."""
    ID_VERIFIED = "id-verify"
    TITLE_MATCH = "title-match"
    AUTHOR_NAMES = "authors-names"
    AFFILIATION_MAPPING = "authors-affil"
    COUNTRY_CODES = "country-codes"
    CORRESPONDING_EMAIL = "corresp-email"
    ABSTRACT_CLEAN = "abstract-clean"
    REFERENCES_FORMAT = "refs-format"


@dataclass(frozen=True)
class ChecklistEntry:
    item: ChecklistItem
    label: str
    critical: bool


QC_CHECKLIST: Tuple[ChecklistEntry, ...] = (
    ChecklistEntry(ChecklistItem.ID_VERIFIED, "ArXiv ID & Version verified against HTML/Scrape", True),
    ChecklistEntry(ChecklistItem.TITLE_MATCH, "Title matches PDF content exactly", True),
    ChecklistEntry(ChecklistItem.AUTHOR_NAMES, "Author names spelling & accents correct", True),
    ChecklistEntry(ChecklistItem.AFFILIATION_MAPPING, "Affiliation indices correctly mapped to authors", True),
    ChecklistEntry(ChecklistItem.COUNTRY_CODES, "Country Codes (ISO) present for all affiliations", True),
    ChecklistEntry(ChecklistItem.CORRESPONDING_EMAIL, "Corresponding author email identified", False),
    ChecklistEntry(ChecklistItem.ABSTRACT_CLEAN, "Abstract text clean (no artifacts/headers)", False),
    ChecklistEntry(ChecklistItem.REFERENCES_FORMAT, "References cleanly separated", False),
)

CRITICAL_ITEMS: Tuple[ChecklistItem, ...] = tuple(e.item for e in QC_CHECKLIST if e.critical)


def missing_critical(checked: Iterable[ChecklistItem]) -> List[ChecklistItem]:
    """Critical items not yet ticked, in checklist order."""
    done = set(checked)
    return [item for item in CRITICAL_ITEMS if item not in done]


def progress(checked: Iterable[ChecklistItem]) -> int:
    """Share of all checklist items ticked, as a rounded percentage."""
    done = set(checked)
    ticked = len([e for e in QC_CHECKLIST if e.item in done])
    return int(100 * ticked / len(QC_CHECKLIST) + 0.5)


def checklist_status(checked: Iterable[ChecklistItem]) -> Dict[str, object]:
    done = set(checked)
    missing = missing_critical(done)
    return {
        "items": [
            {"id": e.item.value, "label": e.label, "critical": e.critical, "checked": e.item in done}
            for e in QC_CHECKLIST
        ],
        "progress": progress(done),
        "missing_critical": [item.value for item in missing],
        "ready": not missing,
    }
