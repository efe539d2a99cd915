"""Extraction Invoker: one structured request per case, validated and verified.

Pipeline for a case:

1. read the input files (:mod:`ace.extraction.sources`)
2. package them into a request and call the model, retrying on rate
   limits (exponential backoff with jitter) and once on an empty or
   malformed response
3. validate the response against :class:`ExtractionResponse`
4. run the verification engine over the per-source ids and titles,
   filling gaps the model left with local evidence
5. build the :class:`ExtractedMetadata` stored on the case
"""

import asyncio
import base64
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
    wait_random,
)

from ..cases.models import CaseRecord
from ..config.settings import settings
from ..core.ids import parse_identifier
from ..core.models import Affiliation, Author, ExtractedMetadata, Reference, SourceKind
from ..utils.logging import get_logger
from ..utils.rate_limit import RateLimiter
from ..verification.engine import VerificationInputs, verify
from .client import ModelClient
from .errors import EmptyOrMalformedResponse, ErrorHandler, RateLimited, SchemaViolation
from .schema import RESPONSE_SCHEMA, ExtractionResponse
from .sources import SourceBundle, SourceEvidence, collect_evidence, read_sources

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

SYSTEM_PROMPT = """
Adhere strictly to these CAR 2.0 GUIDELINES and Business Rules for arXiv extraction.
Your goal is to produce the XML-ready JSON output.

1. ARXIV ID & VERSION VERIFICATION:
   - GOLDEN RULE: Base ID AND Version MUST match across PDF, Scrape, and HTML.
   - If Scrape/HTML says "v2" and PDF says "v1" -> Status = 'VERSION_MISMATCHED'.
   - If the base IDs differ between sources -> Status = 'SUMMARY_MISMATCHED'.
   - EXCEPTION: If PDF has no visible ID, check HTML Title vs PDF Title. If identical, use the HTML ID (Status: 'MATCH_BY_TITLE').
   - Report every per-source ID and version you find in idComparison.

2. TITLE EXTRACTION:
   - The HTML landing page is the authority for text content, punctuation and hyphens.
   - EXCEPTION: if the HTML title contains LaTeX delimiters used purely for styling and the PDF title is the
     same text without them, prefer the PDF title.
   - Remove 'Preprint', 'arXiv' and leading/trailing footnote symbols (*, †, ‡). Keep meaningful punctuation.
   - Complex equations -> "(Formula presented)", figures -> "(Figure presented)", tables -> "(Table presented)".

3. ABSTRACT: capture from the PDF, including continuations on the same line.

4. AUTHORS:
   - API expands an initial or adds a middle initial -> use API. PDF more complete, API lumps names or API is
     garbled -> use PDF. Sequences differ -> capture both.
   - Map footnote symbols (†, ‡, §, ¶, ||, *, #) to affiliations. affiliationIndices are zero-based positions
     in the affiliations array.
   - If an affiliation block contains an author's email, link that author to it.
   - Scan the whole document for ORCID identifiers (0000-XXXX-XXXX-XXXX).

5. EMAILS: capture as printed, without angle brackets or trailing periods, exactly one '@'. Reconstruct
   obfuscated addresses ("name at gmail dot com"). Keep only the first email per author.

6. CORRESPONDENCE: "Corresponding author", "Reprint request to", "All correspondence to", "Contact address"
   or an explicitly defined symbol mark the corresponding author.

7. AFFILIATIONS: scan first-page footnotes, margins and the text after the abstract. Split footnotes holding
   several institutions. Deconstruct into organizations, addressPart, city, state (US/CA/AU only),
   postalCode, country and a mandatory ISO 3166 alpha-3 countryCode.

8. KEYWORDS: look for "Keywords", "Key words" or "Index Terms" and return them without the label.

9. REFERENCES: capture ALL references with 'text' (as printed) and 'fullText' (resolved). Split lines holding
   several citations. Resolve ibid./supra/op. cit. and "______" (same authors as previous) in fullText only.
   Remove leading citation numbers; preserve diacritics.

Output pure JSON matching the schema.
"""

PROMPT_HEADER = (
    "You are ACE (Apeiro Citation Extractor). "
    "Extract metadata adhering strictly to CAR 2.0 Business Rules.\n\n"
)
_AUXILIARY_LABELS = {
    SourceKind.API: "API METADATA (Author Name/Sequence Authority for verification)",
    SourceKind.HTML: "HTML LANDING PAGE (Title/Abstract/ID Authority)",
    SourceKind.SCRAPE: "SCRAPE DATA (Critical ID/Version Source)",
}


def build_request_parts(bundle: SourceBundle, manual_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Package a case's sources as content parts for the model."""
    prompt = PROMPT_HEADER + "--- SUPPORTING DATA ---\n"
    if manual_id:
        prompt += f"MANUAL OVERRIDE ID: {manual_id}\n"
    for kind, text in bundle.auxiliary().items():
        prompt += f"{_AUXILIARY_LABELS[kind]}: {text}\n"
    prompt += "---------------------------------------------------\n\n"

    if bundle.has_usable_text:
        prompt += "--- PRIMARY SOURCE (PDF TEXT EXTRACT) ---\n" + bundle.pdf_text
        return [{"text": prompt}]
    return [
        {"text": prompt},
        {"inlineData": {"mimeType": "application/pdf", "data": base64.b64encode(bundle.pdf_bytes).decode("ascii")}},
    ]


class ExtractionInvoker:
    """Turns a case into a verified :class:`ExtractedMetadata`.

    Raises an :class:`~ace.extraction.errors.ExtractionError` subclass
    when the case cannot be extracted; transport and HTTP failures from the
    model client are wrapped into one. The scheduler turns the error into
    an Error transition.
    """

    def __init__(
        self,
        client: Optional[ModelClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        jitter: Optional[float] = None,
        malformed_delay: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.client = client or ModelClient()
        self.rate_limiter = rate_limiter or RateLimiter.per_minute(settings.requests_per_minute)
        self.max_attempts = max_attempts or settings.rate_limit_max_attempts
        self.base_delay = settings.rate_limit_base_delay if base_delay is None else base_delay
        self.jitter = settings.rate_limit_jitter if jitter is None else jitter
        self.malformed_delay = settings.malformed_retry_delay if malformed_delay is None else malformed_delay
        self._sleep = sleep
        self.error_handler = ErrorHandler()

    async def extract(self, case: CaseRecord) -> ExtractedMetadata:
        bundle = await read_sources(case)
        evidence = collect_evidence(bundle)
        parts = build_request_parts(bundle, case.manual_id)
        response = await self.request(parts)
        return self.build_metadata(case, response, evidence, bundle)

    async def request(self, parts: List[Dict[str, Any]]) -> ExtractionResponse:
        """Call the model once per attempt; an empty or malformed reply gets one more try."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(EmptyOrMalformedResponse),
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.malformed_delay),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                text = await self._generate_with_backoff(parts)
                return self.parse(text)
        raise EmptyOrMalformedResponse("Model returned no usable response")  # pragma: no cover

    async def _generate_with_backoff(self, parts: List[Dict[str, Any]]) -> str:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(RateLimited),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2) + wait_random(0, self.jitter),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                await self.rate_limiter.acquire()
                try:
                    return await self.client.generate(parts, SYSTEM_PROMPT, RESPONSE_SCHEMA)
                except RateLimited as e:
                    if e.retry_after:
                        self.rate_limiter.hold_for(e.retry_after)
                    raise
                except httpx.HTTPError as e:
                    raise self.error_handler.to_extraction_error(e) from e
        raise RateLimited()  # pragma: no cover

    @staticmethod
    def parse(text: str) -> ExtractionResponse:
        if not text or not text.strip():
            raise EmptyOrMalformedResponse("Model returned an empty response body.")
        try:
            return ExtractionResponse.model_validate_json(text)
        except ValidationError as e:
            raise SchemaViolation(f"Response did not match the extraction schema: {e.errors()[0]['msg']}") from e

    def build_metadata(
        self,
        case: CaseRecord,
        response: ExtractionResponse,
        evidence: SourceEvidence,
        bundle: Optional[SourceBundle] = None,
    ) -> ExtractedMetadata:
        """Verify the response against local evidence and assemble the record."""
        reported = response.verification
        ids = reported.id_comparison

        inputs = VerificationInputs(
            pdf_id=ids.pdf_id or _versioned(evidence, SourceKind.PDF),
            pdf_version=ids.pdf_version if ids.pdf_id else None,
            html_id=ids.html_id or _versioned(evidence, SourceKind.HTML),
            html_version=ids.html_version if ids.html_id else None,
            scrape_id=ids.scrape_id or _versioned(evidence, SourceKind.SCRAPE),
            scrape_version=ids.scrape_version if ids.scrape_id else None,
            api_id=ids.api_id or _versioned(evidence, SourceKind.API),
            api_version=ids.api_version if ids.api_id else None,
            pdf_title=reported.title_comparison.pdf_title or evidence.pdf_title,
            html_title=reported.title_comparison.html_title or evidence.html_title,
            pdf_author_names=tuple(a.full_name for a in response.authors),
            api_author_names=evidence.api_author_names,
        )
        result = verify(inputs)
        if result.status.value != reported.status:
            logger.info(
                f"Case {case.case_id}: model reported {reported.status}, engine decided {result.status.value}"
            )

        paper_id = result.authoritative_id or _manual(case.manual_id) or response.arxiv_id or case.case_id
        document_text = response.document_text or (bundle.pdf_text if bundle and bundle.pdf_text else None)

        try:
            return ExtractedMetadata(
                paper_id=paper_id,
                title=result.title_comparison.authoritative_title or response.title,
                abstract=response.abstract,
                keywords=list(response.keywords),
                categories=list(response.categories),
                authors=[
                    Author(
                        first_name=a.first_name,
                        surname=a.surname,
                        initials=a.initials,
                        suffix=a.suffix,
                        degree=a.degree,
                        email=a.email,
                        orcid_id=a.orcid,
                        is_corresponding=bool(a.is_corresponding),
                        affiliation_refs=[int(i) for i in a.affiliation_indices],
                        role=a.role,
                        alias=a.alias,
                    )
                    for a in response.authors
                ],
                affiliations=[
                    Affiliation(
                        organizations=list(aff.organizations),
                        source_text=aff.text,
                        address_part=aff.address_part,
                        city=aff.city,
                        state=aff.state,
                        postal_code=aff.postal_code,
                        country=aff.country,
                        country_code=aff.country_code,
                    )
                    for aff in response.affiliations
                ],
                references=[Reference(source_text=r.text, resolved_text=r.full_text) for r in response.references],
                verification=result,
                document_arxiv_id=response.document_arxiv_id,
                document_text=document_text,
                submission_date=response.submission_date,
            )
        except ValidationError as e:
            raise SchemaViolation(f"Extracted record is inconsistent: {e.errors()[0]['msg']}") from e

    async def chat(self, history: List[Dict[str, str]], record: Optional[ExtractedMetadata], message: str) -> str:
        return await self.client.chat(history, record, message)

    async def close(self) -> None:
        await self.client.close()


def _versioned(evidence: SourceEvidence, kind: SourceKind) -> Optional[str]:
    identifier = evidence.identifier(kind)
    return str(identifier) if identifier else None


def _manual(manual_id: Optional[str]) -> Optional[str]:
    if not manual_id or not manual_id.strip():
        return None
    parsed = parse_identifier(manual_id)
    return parsed.versioned if parsed else manual_id.strip()
