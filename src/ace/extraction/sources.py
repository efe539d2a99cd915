"""Read a case's input files and gather local evidence from them.

The PDF is turned into page-delimited text with PyMuPDF. When the text
layer is too thin (scanned papers), the raw bytes are carried so the
model can read the document itself. The auxiliary files are read as
text and never parsed beyond what the verification engine needs: an
identifier per source, the landing-page title and the API author list.
"""

import asyncio
import json
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import fitz  # PyMuPDF
from bs4 import BeautifulSoup

from ..cases.models import CaseRecord
from ..config.settings import settings
from ..core.ids import PaperIdentifier, find_identifiers, parse_identifier
from ..core.models import SourceKind
from ..core.normalization import clean_text
from ..utils.logging import get_logger
from .errors import SourceUnavailable

logger = get_logger(__name__)

ATOM_NS = {"atom": "http://www.w3.org/2005/Atom"}
_PAGE_HEADER = re.compile(r"^--- Page \d+ ---$", re.MULTILINE)
_TITLE_ID_PREFIX = re.compile(r"^\s*\[[^\]]+\]\s*")


@dataclass
class SourceBundle:
    """Raw content of one case, ready to be packaged into a request."""

    pdf_path: Path
    pdf_text: str = ""
    pdf_bytes: Optional[bytes] = field(default=None, repr=False)
    pdf_title: Optional[str] = None
    page_count: int = 0
    html: Optional[str] = field(default=None, repr=False)
    scrape: Optional[str] = field(default=None, repr=False)
    api: Optional[str] = field(default=None, repr=False)

    @property
    def has_usable_text(self) -> bool:
        return self.pdf_bytes is None

    def auxiliary(self) -> Dict[SourceKind, str]:
        blobs = {SourceKind.API: self.api, SourceKind.HTML: self.html, SourceKind.SCRAPE: self.scrape}
        return {kind: text for kind, text in blobs.items() if text}


@dataclass(frozen=True)
class SourceEvidence:
    """What the input files say on their own, before the model is asked."""

    pdf_id: Optional[PaperIdentifier] = None
    html_id: Optional[PaperIdentifier] = None
    scrape_id: Optional[PaperIdentifier] = None
    api_id: Optional[PaperIdentifier] = None
    pdf_title: Optional[str] = None
    html_title: Optional[str] = None
    api_author_names: Tuple[str, ...] = ()

    def identifier(self, kind: SourceKind) -> Optional[PaperIdentifier]:
        return getattr(self, f"{kind.value}_id")


async def read_sources(
    case: CaseRecord,
    min_text_chars: Optional[int] = None,
    max_pages: Optional[int] = None,
) -> SourceBundle:
    """Load every file of ``case``; file I/O runs in a worker thread."""
    pdf_path = case.files.pdf
    if pdf_path is None:
        raise SourceUnavailable(f"Case {case.case_id} has no PDF file")
    if not pdf_path.is_file():
        raise SourceUnavailable(f"PDF file not found: {pdf_path}")

    min_chars = settings.min_pdf_text_chars if min_text_chars is None else min_text_chars
    pages = max_pages or settings.max_pdf_pages
    bundle = await asyncio.to_thread(_read_pdf, pdf_path, min_chars, pages)

    for kind in (SourceKind.HTML, SourceKind.SCRAPE, SourceKind.API):
        path = case.files.get(kind)
        if path is None:
            continue
        if not path.is_file():
            logger.warning(f"Case {case.case_id}: {kind.value} file missing, continuing without it ({path})")
            continue
        setattr(bundle, kind.value, await asyncio.to_thread(path.read_text, encoding="utf-8", errors="replace"))

    logger.debug(
        f"Case {case.case_id}: read {bundle.page_count} page(s), "
        f"{len(bundle.pdf_text)} chars, auxiliary={[k.value for k in bundle.auxiliary()]}"
    )
    return bundle


def _read_pdf(path: Path, min_chars: int, max_pages: int) -> SourceBundle:
    pages_text: List[str] = []
    title: Optional[str] = None
    page_count = 0
    try:
        with fitz.open(path) as doc:
            page_count = len(doc)
            title = clean_text((doc.metadata or {}).get("title"))
            for page_num, page in enumerate(doc, 1):
                if page_num > max_pages:
                    break
                text = page.get_text()
                if text.strip():
                    pages_text.append(f"--- Page {page_num} ---\n{text}")
    except (RuntimeError, ValueError) as e:
        logger.warning(f"Could not extract text from {path.name}, sending raw PDF instead: {e}")

    content = "\n\n".join(pages_text)
    bundle = SourceBundle(pdf_path=path, pdf_text=content, pdf_title=title, page_count=page_count)
    if len(content) <= min_chars:
        bundle.pdf_bytes = path.read_bytes()
    return bundle


def first_page(text: str) -> str:
    """Text of the first page of a page-delimited extract."""
    headers = list(_PAGE_HEADER.finditer(text))
    if len(headers) < 2:
        return text
    return text[: headers[1].start()]


def collect_evidence(bundle: SourceBundle) -> SourceEvidence:
    """Extract per-source identifiers, titles and API author names."""
    html_id, html_title = _html_evidence(bundle.html)
    scrape_id = parse_identifier(bundle.scrape)
    api_id = parse_identifier(bundle.api)

    # The arXiv stamp sits on the first page; later pages cite other papers.
    pdf_id = parse_identifier(first_page(bundle.pdf_text))
    if pdf_id is None:
        pdf_id = _corroborated_filename_id(bundle.pdf_path, (html_id, scrape_id, api_id))

    return SourceEvidence(
        pdf_id=pdf_id,
        html_id=html_id,
        scrape_id=scrape_id,
        api_id=api_id,
        pdf_title=bundle.pdf_title,
        html_title=html_title,
        api_author_names=tuple(api_author_names(bundle.api)),
    )


def _corroborated_filename_id(
    path: Path, others: Tuple[Optional[PaperIdentifier], ...]
) -> Optional[PaperIdentifier]:
    """File-name id, accepted only when another source reports the same base id."""
    from_name = parse_identifier(path.name)
    if from_name is None:
        return None
    for other in others:
        if other is not None and other.base_id.lower() == from_name.base_id.lower():
            return from_name
    return None


def _html_evidence(html: Optional[str]) -> Tuple[Optional[PaperIdentifier], Optional[str]]:
    if not html:
        return None, None
    soup = BeautifulSoup(html, "html.parser")

    title: Optional[str] = None
    meta_title = soup.find("meta", attrs={"name": "citation_title"})
    if meta_title and meta_title.get("content"):
        title = clean_text(meta_title["content"])
    elif soup.title and soup.title.string:
        title = clean_text(_TITLE_ID_PREFIX.sub("", soup.title.string))

    identifier: Optional[PaperIdentifier] = None
    meta_id = soup.find("meta", attrs={"name": "citation_arxiv_id"})
    if meta_id and meta_id.get("content"):
        identifier = parse_identifier(meta_id["content"])
    if identifier is None and soup.title and soup.title.string:
        identifier = parse_identifier(soup.title.string)
    if identifier is None:
        found = find_identifiers(soup.get_text(" "))
        identifier = found[0] if found else None
    return identifier, title


def api_author_names(api: Optional[str]) -> List[str]:
    """Author names from an API record (JSON or arXiv Atom feed)."""
    if not api or not api.strip():
        return []
    text = api.strip()
    if text.startswith(("{", "[")):
        try:
            return _json_author_names(json.loads(text))
        except json.JSONDecodeError:
            logger.debug("API record is not valid JSON")
            return []
    if text.startswith("<"):
        try:
            root = ET.fromstring(text)
        except ET.ParseError:
            logger.debug("API record is not valid XML")
            return []
        entry = root if root.tag.endswith("entry") else root.find("atom:entry", ATOM_NS)
        if entry is None:
            return []
        names = []
        for author in entry.findall("atom:author", ATOM_NS):
            name_elem = author.find("atom:name", ATOM_NS)
            if name_elem is not None and name_elem.text:
                names.append(name_elem.text.strip())
        return names
    return []


def _json_author_names(data: Any) -> List[str]:
    if isinstance(data, list):
        data = data[0] if data and isinstance(data[0], dict) else {"authors": data}
    if not isinstance(data, dict):
        return []
    authors = data.get("authors") or data.get("author") or []
    if isinstance(authors, str):
        return [a.strip() for a in re.split(r",|\band\b", authors) if a.strip()]

    names: List[str] = []
    for author in authors:
        if isinstance(author, str):
            names.append(author.strip())
        elif isinstance(author, dict):
            name = author.get("name") or " ".join(
                p for p in (author.get("firstName") or author.get("given"), author.get("surname") or author.get("family")) if p
            )
            if name:
                names.append(name.strip())
    return [n for n in names if n]
