"""Typed contract for the extraction model's JSON response.

``ExtractionResponse`` is validated strictly (no silent coercion of
strings into numbers or the like); anything that does not fit is a
schema violation. ``RESPONSE_SCHEMA`` is the same contract expressed
in the model API's schema dialect and is sent with every request so
the model is constrained to produce it.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

VerificationStatusValue = Literal[
    "SUCCESS",
    "SUMMARY_MISMATCHED",
    "VERSION_MISMATCHED",
    "MATCH_BY_TITLE",
    "AUTHOR_MISMATCH",
    "CHECK_REQUIRED",
]


class _Wire(BaseModel):
    model_config = ConfigDict(
        strict=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class WireIdComparison(_Wire):
    pdf_id: Optional[str] = None
    pdf_version: Optional[str] = None
    html_id: Optional[str] = None
    html_version: Optional[str] = None
    scrape_id: Optional[str] = None
    scrape_version: Optional[str] = None
    api_id: Optional[str] = None
    api_version: Optional[str] = None
    version_match: bool


class WireTitleComparison(_Wire):
    pdf_title: Optional[str] = None
    html_title: Optional[str] = None
    match: bool
    source_used: Literal["HTML", "PDF"]


class WireAuthorComparison(_Wire):
    match: bool
    details: str
    pdf_count: Optional[float] = None
    api_count: Optional[float] = None


class WireVerification(_Wire):
    status: VerificationStatusValue
    message: str
    id_comparison: WireIdComparison
    title_comparison: WireTitleComparison
    author_comparison: WireAuthorComparison


class WireAuthor(_Wire):
    first_name: str
    surname: str
    initials: str
    suffix: Optional[str] = None
    degree: Optional[str] = None
    email: Optional[str] = None
    orcid: Optional[str] = None
    is_corresponding: Optional[bool] = None
    affiliation_indices: List[float]
    role: Optional[str] = None
    alias: Optional[str] = None

    @field_validator("affiliation_indices")
    @classmethod
    def _whole_numbers(cls, v: List[float]) -> List[float]:
        for value in v:
            if not float(value).is_integer():
                raise ValueError(f"affiliation index {value} is not a whole number")
        return v

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.surname) if part)


class WireAffiliation(_Wire):
    id: float
    text: str
    organizations: List[str]
    address_part: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    country_code: Optional[str] = None


class WireReference(_Wire):
    text: str
    full_text: str


class ExtractionResponse(_Wire):
    """Top-level extraction payload."""

    verification: WireVerification
    arxiv_id: str
    document_arxiv_id: Optional[str] = None
    document_text: Optional[str] = Field(None, repr=False)
    id_match_status: Optional[Literal["MATCH", "MISMATCH", "NOT_FOUND_IN_DOC"]] = None
    submission_date: Optional[str] = None
    title: str
    keywords: List[str] = Field(default_factory=list)
    categories: List[str] = Field(default_factory=list)
    authors: List[WireAuthor]
    affiliations: List[WireAffiliation]
    abstract: str
    references: List[WireReference]


def _nullable(kind: str, description: Optional[str] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": kind, "nullable": True}
    if description:
        schema["description"] = description
    return schema


_STRING_ARRAY = {"type": "ARRAY", "items": {"type": "STRING"}}

RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "verification": {
            "type": "OBJECT",
            "description": "The results of the pre-extraction verification steps.",
            "properties": {
                "status": {
                    "type": "STRING",
                    "enum": list(VerificationStatusValue.__args__),
                    "description": "The overall status based on ID matching and author logic.",
                },
                "message": {"type": "STRING", "description": "A brief reason for the status."},
                "idComparison": {
                    "type": "OBJECT",
                    "properties": {
                        "pdfId": _nullable("STRING"),
                        "pdfVersion": _nullable("STRING"),
                        "htmlId": _nullable("STRING", "ID extracted from the HTML landing page"),
                        "htmlVersion": _nullable("STRING"),
                        "scrapeId": _nullable("STRING"),
                        "scrapeVersion": _nullable("STRING"),
                        "apiId": _nullable("STRING"),
                        "apiVersion": _nullable("STRING"),
                        "versionMatch": {"type": "BOOLEAN"},
                    },
                    "required": ["versionMatch"],
                },
                "titleComparison": {
                    "type": "OBJECT",
                    "properties": {
                        "pdfTitle": _nullable("STRING"),
                        "htmlTitle": _nullable("STRING"),
                        "match": {"type": "BOOLEAN"},
                        "sourceUsed": {"type": "STRING", "enum": ["HTML", "PDF"]},
                    },
                    "required": ["match", "sourceUsed"],
                },
                "authorComparison": {
                    "type": "OBJECT",
                    "properties": {
                        "match": {"type": "BOOLEAN"},
                        "details": {"type": "STRING"},
                        "pdfCount": {"type": "NUMBER"},
                        "apiCount": {"type": "NUMBER"},
                    },
                    "required": ["match", "details"],
                },
            },
            "required": ["status", "message", "idComparison", "titleComparison", "authorComparison"],
        },
        "arxivId": {
            "type": "STRING",
            "description": "The final validated arXiv ID with version (e.g. 2501.12345v1).",
        },
        "documentArxivId": _nullable("STRING", "ID extracted specifically from the document text."),
        "documentText": _nullable("STRING", "The full text content of the document."),
        "idMatchStatus": {"type": "STRING", "enum": ["MATCH", "MISMATCH", "NOT_FOUND_IN_DOC"], "nullable": True},
        "submissionDate": _nullable("STRING"),
        "title": {"type": "STRING"},
        "keywords": _STRING_ARRAY,
        "categories": _STRING_ARRAY,
        "authors": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "firstName": {"type": "STRING"},
                    "surname": {"type": "STRING"},
                    "initials": {"type": "STRING"},
                    "suffix": _nullable("STRING"),
                    "degree": _nullable("STRING"),
                    "email": _nullable("STRING"),
                    "orcid": _nullable("STRING"),
                    "isCorresponding": _nullable("BOOLEAN"),
                    "affiliationIndices": {"type": "ARRAY", "items": {"type": "NUMBER"}},
                    "role": _nullable("STRING"),
                    "alias": _nullable("STRING"),
                },
                "required": ["firstName", "surname", "initials", "affiliationIndices"],
            },
        },
        "affiliations": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "id": {"type": "NUMBER"},
                    "text": {"type": "STRING"},
                    "organizations": _STRING_ARRAY,
                    "addressPart": _nullable("STRING"),
                    "city": _nullable("STRING"),
                    "state": _nullable("STRING"),
                    "postalCode": _nullable("STRING"),
                    "country": _nullable("STRING"),
                    "countryCode": _nullable("STRING"),
                },
                "required": ["id", "text", "organizations"],
            },
        },
        "abstract": {"type": "STRING"},
        "references": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "text": {"type": "STRING", "description": "The reference as printed (e.g. '______, et al.')"},
                    "fullText": {"type": "STRING", "description": "The fully resolved reference text"},
                },
                "required": ["text", "fullText"],
            },
        },
    },
    "required": ["verification", "arxivId", "title", "authors", "affiliations", "abstract", "references"],
}
