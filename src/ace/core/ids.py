"""arXiv identifier parsing and generation utilities."""

import re
import secrets
import string
from dataclasses import dataclass
from typing import List, Optional, Tuple

# New-style identifiers (YYMM.NNNN or YYMM.NNNNN) with an optional version.
_NEW_STYLE = r"(?P<new>\d{4}\.\d{4,5})"
# Legacy identifiers such as hep-th/9901001 or math.GT/0309136.
_ARCHIVES = (
    "astro-ph", "cond-mat", "gr-qc", "hep-ex", "hep-lat", "hep-ph", "hep-th", "math-ph",
    "nlin", "nucl-ex", "nucl-th", "physics", "quant-ph", "math", "cs", "q-bio", "q-fin",
    "stat", "chao-dyn", "solv-int", "patt-sol", "adap-org", "alg-geom", "dg-ga",
    "funct-an", "q-alg", "cmp-lg", "mtrl-th", "supr-con", "chem-ph", "atom-ph", "acc-phys",
)
_LEGACY = rf"(?P<legacy>(?:{'|'.join(re.escape(a) for a in _ARCHIVES)})(?:\.[A-Z]{{2}})?/\d{{7}})"
_VERSION = r"(?P<version>v\d+)?"

ARXIV_ID_PATTERN = re.compile(
    rf"(?<![\d.])(?:arxiv:\s*)?(?:{_NEW_STYLE}|{_LEGACY}){_VERSION}(?![\d])",
    re.IGNORECASE,
)
_VERSION_SUFFIX = re.compile(r"^(?P<base>.+?)\s*(?P<version>v\d+)$", re.IGNORECASE)
# "2405.12345 v2": whitespace between an id and its version suffix.
_SPACED_VERSION = re.compile(r"(?<=\d)\s+(?=v\d+\b)", re.IGNORECASE)


@dataclass(frozen=True)
class PaperIdentifier:
    """A parsed paper identifier: base id plus optional version suffix."""

    base_id: str
    version: Optional[str] = None

    @property
    def version_number(self) -> int:
        return version_number(self.version)

    @property
    def versioned(self) -> str:
        """Canonical ``base`` + ``vN`` form; a missing version renders as v1."""
        return f"{self.base_id}v{self.version_number}"

    def __str__(self) -> str:
        return f"{self.base_id}{self.version or ''}"


def normalize_version(version: Optional[str]) -> Optional[str]:
    """Normalize a version token to ``vN`` (accepts ``v2``, ``V2`` and ``2``)."""
    if version is None:
        return None
    token = str(version).strip().lower()
    if not token:
        return None
    if token.startswith("v"):
        token = token[1:]
    if not token.isdigit():
        return None
    return f"v{int(token)}"


def version_number(version: Optional[str]) -> int:
    """Return the integer version; absence of a suffix counts as version 1."""
    normalized = normalize_version(version)
    if normalized is None:
        return 1
    return int(normalized[1:])


def split_version(identifier: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split ``2405.12345v2`` into ``("2405.12345", "v2")``.

    Prefixes such as ``arXiv:`` are removed. Identifiers without a
    suffix return ``(base, None)``; empty input returns ``(None, None)``.
    """
    if not identifier:
        return None, None
    text = identifier.strip()
    if text.lower().startswith("arxiv:"):
        text = text[6:].strip()
    if not text:
        return None, None
    match = _VERSION_SUFFIX.match(text)
    if match:
        return match.group("base"), match.group("version").lower()
    return text, None


def base_id(identifier: Optional[str]) -> Optional[str]:
    """Return the identifier without its version suffix."""
    return split_version(identifier)[0]


def parse_identifier(text: Optional[str]) -> Optional[PaperIdentifier]:
    """Extract the first arXiv identifier found in free text.

    Handles bare ids, ``arXiv:`` prefixes, abs/pdf URLs and the arXiv
    DOI form ``10.48550/arXiv.2405.12345``.
    """
    found = find_identifiers(text)
    return found[0] if found else None


def find_identifiers(text: Optional[str]) -> List[PaperIdentifier]:
    """Return every arXiv identifier in ``text`` in order of appearance."""
    if not text:
        return []
    # The DOI form glues the id to "arXiv." which the look-behind would reject.
    text = re.sub(r"10\.48550/arxiv\.", " ", text, flags=re.IGNORECASE)
    results: List[PaperIdentifier] = []
    for match in ARXIV_ID_PATTERN.finditer(text):
        base = match.group("new") or match.group("legacy")
        results.append(PaperIdentifier(base_id=base, version=normalize_version(match.group("version"))))
    return results


def resolve_identifier(identifier: Optional[str], version: Optional[str] = None) -> Optional[PaperIdentifier]:
    """Combine an id (which may carry its own suffix) with a separate version field.

    An explicit suffix on the id wins over the separate field. Values
    holding an arXiv id in any written form (URL, ``arXiv:`` prefix,
    DOI, space before the version) reduce to that id; anything else is
    taken verbatim.
    """
    if not identifier or not identifier.strip():
        return None
    text = _SPACED_VERSION.sub("", identifier.strip())
    parsed = parse_identifier(text)
    if parsed is not None:
        return PaperIdentifier(base_id=parsed.base_id, version=parsed.version or normalize_version(version))
    base, suffix = split_version(text)
    if base is None:
        return None
    return PaperIdentifier(base_id=base, version=suffix or normalize_version(version))


def generate_case_token(length: int = 7) -> str:
    """Random lowercase token used as case id when no paper id is known."""
    alphabet = string.ascii_lowercase + string.digits
    return "".join(secrets.choice(alphabet) for _ in range(length))
