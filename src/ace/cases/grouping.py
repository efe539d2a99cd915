"""Group input files into cases by the arXiv id in their names."""

from pathlib import Path
from typing import Dict, Iterable, List

from ..core.ids import generate_case_token, parse_identifier
from ..utils.logging import get_logger
from .models import CaseFiles, CaseRecord

logger = get_logger(__name__)

_SCRAPE_MARKERS = ("scrape", "scraping", "scrapping")


def _assign(slots: Dict[str, Path], path: Path) -> None:
    """Place a file in a slot by extension and name.

    Priority: PDF, HTML, explicit scrape, explicit API, JSON fallback.
    """
    name = path.name.lower()
    if name.endswith(".pdf"):
        slots["pdf"] = path
    elif name.endswith((".html", ".htm")):
        slots["html"] = path
    elif any(marker in name for marker in _SCRAPE_MARKERS):
        slots["scrape"] = path
    elif "api" in name:
        slots["api"] = path
    elif name.endswith(".json"):
        # A generic JSON is the API record unless one is already known.
        if "api" in slots:
            slots["scrape"] = path
        else:
            slots["api"] = path
    elif "scrape" not in slots:
        slots["scrape"] = path


def group_files_into_cases(paths: Iterable[Path]) -> List[CaseRecord]:
    """Build Idle cases from a flat list of files.

    Files sharing a base id form one case keyed by that id. A PDF with
    no id in its name becomes its own case with a random id; other
    files without an id are skipped.
    """
    grouped: Dict[str, Dict[str, Path]] = {}
    unmatched: List[Path] = []

    for path in sorted(Path(p) for p in paths):
        identifier = parse_identifier(path.name)
        if identifier is None:
            unmatched.append(path)
            continue
        _assign(grouped.setdefault(identifier.base_id, {}), path)

    cases = [
        CaseRecord(case_id=base, display_name=base, files=CaseFiles(**slots))
        for base, slots in grouped.items()
    ]

    for path in unmatched:
        if path.suffix.lower() == ".pdf":
            cases.append(
                CaseRecord(case_id=generate_case_token(), display_name=path.stem, files=CaseFiles(pdf=path))
            )
        else:
            logger.warning(f"Skipping {path.name}: no arXiv id in file name")

    logger.info(f"Grouped {len(grouped)} id-named case(s) and {len(cases) - len(grouped)} orphan PDF(s)")
    return cases


def scan_directory(directory: Path) -> List[CaseRecord]:
    """Group every regular, non-hidden file under ``directory``."""
    files = [
        p for p in Path(directory).rglob("*")
        if p.is_file() and not p.name.startswith(".") and "__MACOSX" not in p.parts
    ]
    return group_files_into_cases(files)
