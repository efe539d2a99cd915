"""Core domain models for extracted paper metadata and its verification."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .ids import PaperIdentifier, resolve_identifier


class SourceKind(str, Enum):
    """The four independently sourced inputs of a case."""

    PDF = "pdf"
    HTML = "html"
    SCRAPE = "scrape"
    API = "api"


class VerificationStatus(str, Enum):
    """Outcome of the cross-source verification.

    ``AUTHOR_MISMATCH`` and ``CHECK_REQUIRED`` are accepted from the
    extraction model's own report but never produced by the engine.
    """

    SUCCESS = "SUCCESS"
    MATCH_BY_TITLE = "MATCH_BY_TITLE"
    VERSION_MISMATCHED = "VERSION_MISMATCHED"
    SUMMARY_MISMATCHED = "SUMMARY_MISMATCHED"
    AUTHOR_MISMATCH = "AUTHOR_MISMATCH"
    CHECK_REQUIRED = "CHECK_REQUIRED"

    @property
    def is_blocking(self) -> bool:
        """Statuses that gate QC finalization until an operator overrides."""
        return self in (VerificationStatus.VERSION_MISMATCHED, VerificationStatus.SUMMARY_MISMATCHED)


class TitleSource(str, Enum):
    HTML = "HTML"
    PDF = "PDF"


class Affiliation(BaseModel):
    """An affiliation block. Immutable once extracted."""

    model_config = ConfigDict(frozen=True)

    organizations: List[str] = Field(default_factory=list)
    source_text: Optional[str] = None
    address_part: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = Field(None, description="ISO 3166 alpha-3 code")


class Author(BaseModel):
    """Author information. ``affiliation_refs`` are positions in ``ExtractedMetadata.affiliations``."""

    first_name: str
    surname: str
    initials: str
    suffix: Optional[str] = None
    degree: Optional[str] = None
    email: Optional[str] = None
    orcid_id: Optional[str] = None
    is_corresponding: bool = False
    affiliation_refs: List[int] = Field(default_factory=list)
    role: Optional[str] = None
    alias: Optional[str] = None

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.surname) if part)

    @field_validator("email")
    @classmethod
    def _clean_email(cls, v: Optional[str]) -> Optional[str]:
        """Strip angle brackets and trailing periods."""
        if not v:
            return None
        email = v.strip().rstrip(".").strip("<>").strip()
        return email or None


class Reference(BaseModel):
    """A bibliography entry as printed and as resolved (ibid., underscores...)."""

    source_text: str
    resolved_text: str


class IdComparison(BaseModel):
    """Per-source identifiers as seen by the verification engine."""

    model_config = ConfigDict(frozen=True)

    pdf_id: Optional[str] = None
    pdf_version: Optional[str] = None
    html_id: Optional[str] = None
    html_version: Optional[str] = None
    scrape_id: Optional[str] = None
    scrape_version: Optional[str] = None
    api_id: Optional[str] = None
    api_version: Optional[str] = None
    versions_agree: bool = True

    def identifiers(self) -> Dict[SourceKind, PaperIdentifier]:
        """Parsed identifiers keyed by source, skipping sources without one."""
        pairs = {
            SourceKind.PDF: (self.pdf_id, self.pdf_version),
            SourceKind.HTML: (self.html_id, self.html_version),
            SourceKind.SCRAPE: (self.scrape_id, self.scrape_version),
            SourceKind.API: (self.api_id, self.api_version),
        }
        result: Dict[SourceKind, PaperIdentifier] = {}
        for kind, (identifier, version) in pairs.items():
            parsed = resolve_identifier(identifier, version)
            if parsed is not None:
                result[kind] = parsed
        return result


class TitleComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    pdf_title: Optional[str] = None
    html_title: Optional[str] = None
    match: bool = False
    authoritative_source: TitleSource = TitleSource.HTML

    @property
    def authoritative_title(self) -> Optional[str]:
        if self.authoritative_source == TitleSource.PDF:
            return self.pdf_title or self.html_title
        return self.html_title or self.pdf_title


class AuthorComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    match: bool
    rationale: str
    pdf_author_count: int = Field(0, ge=0)
    api_author_count: int = Field(0, ge=0)


class VerificationResult(BaseModel):
    """Verification findings attached to every successful extraction.

    Produced only by :func:`ace.verification.engine.verify`, which derives
    ``status`` from the id and title comparisons.
    """

    model_config = ConfigDict(frozen=True)

    status: VerificationStatus
    message: str = ""
    id_comparison: IdComparison = Field(default_factory=IdComparison)
    title_comparison: TitleComparison = Field(default_factory=TitleComparison)
    author_comparison: AuthorComparison
    authoritative_id: Optional[str] = None
    disagreeing_sources: List[SourceKind] = Field(default_factory=list)

    @property
    def requires_override(self) -> bool:
        return self.status.is_blocking


class ExtractedMetadata(BaseModel):
    """Structured metadata for one paper, as extracted and then verified."""

    paper_id: str
    title: str
    abstract: str = ""
    keywords: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    authors: List[Author] = Field(default_factory=list)
    affiliations: List[Affiliation] = Field(default_factory=list)
    references: List[Reference] = Field(default_factory=list)
    verification: VerificationResult

    document_arxiv_id: Optional[str] = None
    document_text: Optional[str] = Field(None, repr=False)
    submission_date: Optional[str] = None

    @model_validator(mode="after")
    def _check_affiliation_refs(self) -> "ExtractedMetadata":
        """Every author affiliation reference must point into ``affiliations``."""
        count = len(self.affiliations)
        for position, author in enumerate(self.authors, start=1):
            bad = [ref for ref in author.affiliation_refs if ref < 0 or ref >= count]
            if bad:
                raise ValueError(
                    f"author {position} ({author.full_name}) references affiliation(s) "
                    f"{bad} but only {count} affiliation(s) exist"
                )
        return self

    def authors_for_affiliation(self, index: int) -> List[Author]:
        return [a for a in self.authors if index in a.affiliation_refs]

    def orphan_authors(self) -> List[Author]:
        """Authors without any affiliation reference."""
        return [a for a in self.authors if not a.affiliation_refs]
