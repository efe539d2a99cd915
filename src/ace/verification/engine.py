"""Cross-source verification of identifier, title and author list.

The engine is a pure function over what each source reported. It never
touches a case, holds no state and never raises for missing input:
every field is optional and absent sources are simply left out of the
comparisons.

The status comes from an ordered decision chain; the first rule that
applies wins:

1. Sources disagree on the base id            -> ``SUMMARY_MISMATCHED``
2. PDF has no id but its title matches HTML's -> ``MATCH_BY_TITLE``
3. Sources disagree on the version            -> ``VERSION_MISMATCHED``
4. Otherwise                                  -> ``SUCCESS``

Title authority and author-count comparison are evaluated alongside
and never influence the status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..core.ids import PaperIdentifier, resolve_identifier
from ..core.models import (
    AuthorComparison,
    IdComparison,
    SourceKind,
    TitleComparison,
    TitleSource,
    VerificationResult,
    VerificationStatus,
)
from ..core.normalization import (
    clean_text,
    has_math_delimiters,
    normalize_author_names,
    titles_equivalent,
)

BASE_ID_MISMATCH_MESSAGE = "Base ID mismatch across sources."

# Order in which sources are consulted when adopting an identifier.
_ID_PRECEDENCE = (SourceKind.HTML, SourceKind.SCRAPE, SourceKind.API, SourceKind.PDF)
_REPORT_ORDER = (SourceKind.PDF, SourceKind.HTML, SourceKind.SCRAPE, SourceKind.API)


@dataclass(frozen=True)
class VerificationInputs:
    """Everything the engine looks at. All fields are optional."""

    pdf_id: Optional[str] = None
    pdf_version: Optional[str] = None
    html_id: Optional[str] = None
    html_version: Optional[str] = None
    scrape_id: Optional[str] = None
    scrape_version: Optional[str] = None
    api_id: Optional[str] = None
    api_version: Optional[str] = None
    pdf_title: Optional[str] = None
    html_title: Optional[str] = None
    pdf_author_names: Sequence[str] = field(default_factory=tuple)
    api_author_names: Sequence[str] = field(default_factory=tuple)

    def identifiers(self) -> Dict[SourceKind, PaperIdentifier]:
        pairs = {
            SourceKind.PDF: (self.pdf_id, self.pdf_version),
            SourceKind.HTML: (self.html_id, self.html_version),
            SourceKind.SCRAPE: (self.scrape_id, self.scrape_version),
            SourceKind.API: (self.api_id, self.api_version),
        }
        found: Dict[SourceKind, PaperIdentifier] = {}
        for kind, (identifier, version) in pairs.items():
            parsed = resolve_identifier(clean_text(identifier), version)
            if parsed is not None:
                found[kind] = parsed
        return found


@dataclass(frozen=True)
class _Decision:
    status: VerificationStatus
    message: str
    authoritative_id: Optional[str] = None
    disagreeing: List[SourceKind] = field(default_factory=list)


def verify(inputs: VerificationInputs) -> VerificationResult:
    """Classify one paper's sources into a :class:`VerificationResult`."""
    identifiers = inputs.identifiers()
    titles = compare_titles(inputs.pdf_title, inputs.html_title)
    authors = compare_authors(inputs.pdf_author_names, inputs.api_author_names)
    decision = _decide(identifiers, titles)

    id_comparison = IdComparison(
        pdf_id=_base(identifiers, SourceKind.PDF),
        pdf_version=_version(identifiers, SourceKind.PDF),
        html_id=_base(identifiers, SourceKind.HTML),
        html_version=_version(identifiers, SourceKind.HTML),
        scrape_id=_base(identifiers, SourceKind.SCRAPE),
        scrape_version=_version(identifiers, SourceKind.SCRAPE),
        api_id=_base(identifiers, SourceKind.API),
        api_version=_version(identifiers, SourceKind.API),
        versions_agree=len({ident.version_number for ident in identifiers.values()}) <= 1,
    )
    return VerificationResult(
        status=decision.status,
        message=decision.message,
        id_comparison=id_comparison,
        title_comparison=titles,
        author_comparison=authors,
        authoritative_id=decision.authoritative_id,
        disagreeing_sources=decision.disagreeing,
    )


def _decide(identifiers: Dict[SourceKind, PaperIdentifier], titles: TitleComparison) -> _Decision:
    # 1. Base id agreement
    bases = {kind: ident.base_id.lower() for kind, ident in identifiers.items()}
    if len(set(bases.values())) > 1:
        detail = ", ".join(f"{kind.value}={identifiers[kind].base_id}" for kind in _ordered(identifiers))
        return _Decision(
            status=VerificationStatus.SUMMARY_MISMATCHED,
            message=f"{BASE_ID_MISMATCH_MESSAGE} ({detail})",
            disagreeing=_ordered(identifiers),
        )

    # 2. PDF carries no id: fall back to the title
    if SourceKind.PDF not in identifiers and titles.html_title and titles.match:
        adopted = _first(identifiers, (SourceKind.HTML, SourceKind.SCRAPE, SourceKind.API))
        message = "PDF has no identifier; PDF title matches the HTML title."
        if adopted is None:
            message += " No identifier found in any other source."
        return _Decision(
            status=VerificationStatus.MATCH_BY_TITLE,
            message=message,
            authoritative_id=adopted.versioned if adopted else None,
        )

    # 3. Version agreement (a missing suffix counts as v1)
    versions = {kind: ident.version_number for kind, ident in identifiers.items()}
    if len(set(versions.values())) > 1:
        latest = _latest(identifiers, (SourceKind.HTML, SourceKind.SCRAPE)) or _latest(
            identifiers, _ID_PRECEDENCE
        )
        disagreeing = [kind for kind in _ordered(identifiers) if versions[kind] != latest.version_number]
        detail = ", ".join(f"{kind.value}=v{versions[kind]}" for kind in _ordered(identifiers))
        return _Decision(
            status=VerificationStatus.VERSION_MISMATCHED,
            message=f"Version mismatch across sources ({detail}); using latest {latest.versioned}.",
            authoritative_id=latest.versioned,
            disagreeing=disagreeing,
        )

    # 4. Everything agrees
    adopted = _first(identifiers, _ID_PRECEDENCE)
    if adopted is None:
        return _Decision(status=VerificationStatus.SUCCESS, message="No identifier reported by any source.")
    sources = ", ".join(kind.value for kind in _ordered(identifiers))
    return _Decision(
        status=VerificationStatus.SUCCESS,
        message=f"ID and version agree across sources ({sources}).",
        authoritative_id=adopted.versioned,
    )


def compare_titles(pdf_title: Optional[str], html_title: Optional[str]) -> TitleComparison:
    """Decide which title is authoritative.

    HTML is authoritative for punctuation and spelling. When the only
    difference is LaTeX styling markup in the HTML title, the titles
    still match and the cleaner PDF title is preferred.
    """
    pdf = clean_text(pdf_title)
    html = clean_text(html_title)
    match = titles_equivalent(pdf, html)

    if html is None:
        source = TitleSource.PDF if pdf else TitleSource.HTML
    elif match and has_math_delimiters(html) and not has_math_delimiters(pdf):
        source = TitleSource.PDF
    else:
        source = TitleSource.HTML

    return TitleComparison(pdf_title=pdf, html_title=html, match=match, authoritative_source=source)


def compare_authors(pdf_names: Sequence[str], api_names: Sequence[str]) -> AuthorComparison:
    """Compare author counts. Advisory only: never changes the status."""
    pdf_count = len(normalize_author_names(pdf_names))
    api_count = len(normalize_author_names(api_names))

    if pdf_count == api_count:
        rationale = f"Author counts match ({pdf_count})."
    elif api_count == 0:
        rationale = f"No API author list to compare against the {pdf_count} PDF author(s)."
    elif pdf_count == 0:
        rationale = f"PDF author list is empty; API lists {api_count}."
    elif api_count < pdf_count:
        rationale = (
            f"API lists fewer authors than PDF ({api_count} vs {pdf_count}): possible lumped names."
        )
    else:
        rationale = (
            f"API lists more authors than PDF ({api_count} vs {pdf_count}): "
            "PDF names may be missing or API names split."
        )

    return AuthorComparison(
        match=pdf_count == api_count,
        rationale=rationale,
        pdf_author_count=pdf_count,
        api_author_count=api_count,
    )


def _ordered(identifiers: Dict[SourceKind, PaperIdentifier]) -> List[SourceKind]:
    return [kind for kind in _REPORT_ORDER if kind in identifiers]


def _first(
    identifiers: Dict[SourceKind, PaperIdentifier], order: Sequence[SourceKind]
) -> Optional[PaperIdentifier]:
    for kind in order:
        if kind in identifiers:
            return identifiers[kind]
    return None


def _latest(
    identifiers: Dict[SourceKind, PaperIdentifier], among: Sequence[SourceKind]
) -> Optional[PaperIdentifier]:
    candidates = [identifiers[kind] for kind in among if kind in identifiers]
    if not candidates:
        return None
    # max() keeps the first of equal versions, so precedence order breaks ties.
    return max(candidates, key=lambda ident: ident.version_number)


def _base(identifiers: Dict[SourceKind, PaperIdentifier], kind: SourceKind) -> Optional[str]:
    ident = identifiers.get(kind)
    return ident.base_id if ident else None


def _version(identifiers: Dict[SourceKind, PaperIdentifier], kind: SourceKind) -> Optional[str]:
    ident = identifiers.get(kind)
    return ident.version if ident else None
