"""Test doubles and builders shared across the suite."""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import fitz

from ace.cases.checklist import CRITICAL_ITEMS
from ace.cases.models import CaseRecord
from ace.core.models import Affiliation, Author, ExtractedMetadata, Reference
from ace.verification.engine import VerificationInputs, verify


def build_response(**overrides: Any) -> Dict[str, Any]:
    """A schema-valid extraction payload (camelCase, as the model returns it)."""
    payload: Dict[str, Any] = {
        "verification": {
            "status": "SUCCESS",
            "message": "IDs match",
            "idComparison": {
                "pdfId": "2405.12345",
                "pdfVersion": "v1",
                "htmlId": "2405.12345",
                "htmlVersion": "v1",
                "versionMatch": True,
            },
            "titleComparison": {
                "pdfTitle": "Fast Learning",
                "htmlTitle": "Fast Learning",
                "match": True,
                "sourceUsed": "HTML",
            },
            "authorComparison": {"match": True, "details": "2 vs 2", "pdfCount": 2, "apiCount": 2},
        },
        "arxivId": "2405.12345v1",
        "title": "Fast Learning",
        "keywords": ["learning", "speed"],
        "categories": ["cs.LG"],
        "authors": [
            {
                "firstName": "Ada",
                "surname": "Lovelace",
                "initials": "A.",
                "email": "<ada@example.org>.",
                "isCorresponding": True,
                "affiliationIndices": [0],
            },
            {"firstName": "Alan", "surname": "Turing", "initials": "A.M.", "affiliationIndices": []},
        ],
        "affiliations": [
            {
                "id": 0,
                "text": "University of London, London, UK",
                "organizations": ["University of London"],
                "city": "London",
                "country": "United Kingdom",
                "countryCode": "GBR",
            }
        ],
        "abstract": "We learn fast.",
        "references": [{"text": "______, Miyamoto, A.", "fullText": "Kobayashi, A., Miyamoto, A."}],
    }
    payload.update(overrides)
    return payload


def response_json(**overrides: Any) -> str:
    return json.dumps(build_response(**overrides))


def with_ids(**ids: Optional[str]) -> Dict[str, Any]:
    """Verification block with the given idComparison fields (others null)."""
    verification = build_response()["verification"]
    verification["idComparison"] = {"versionMatch": True, **ids}
    return verification


class FakeModelClient:
    """Stands in for :class:`ace.extraction.client.ModelClient`.

    ``outcomes`` are consumed one per call: strings are returned as the
    response text, exceptions are raised.
    """

    def __init__(self, outcomes: List[Union[str, BaseException]], chat_answer: str = "It is Ada."):
        self.outcomes = list(outcomes)
        self.calls: List[List[Dict[str, Any]]] = []
        self.chat_calls: List[Dict[str, Any]] = []
        self.chat_answer = chat_answer
        self.closed = False

    async def generate(self, parts, system_instruction=None, response_schema=None) -> str:
        self.calls.append(parts)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def chat(self, history, record, message) -> str:
        self.chat_calls.append({"history": history, "record": record, "message": message})
        return self.chat_answer

    async def close(self) -> None:
        self.closed = True


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeClock:
    """Monotonic clock for :class:`RateLimiter` that only moves when it sleeps."""

    def __init__(self, start: float = 100.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(round(seconds, 3))
        self.now += seconds


class FakeInvoker:
    """Scheduler-level stand-in for the extraction invoker.

    ``plan`` maps case ids to an exception to raise; other cases succeed
    after ``delay`` seconds. Tracks how many extractions overlap.
    """

    def __init__(self, plan: Optional[Dict[str, BaseException]] = None, delay: float = 0.01):
        self.plan = plan or {}
        self.delay = delay
        self.active = 0
        self.max_active = 0
        self.started: List[str] = []
        self.gates: Dict[str, asyncio.Event] = {}

    async def extract(self, case: CaseRecord) -> ExtractedMetadata:
        self.started.append(case.case_id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(case.case_id)
            if gate is not None:
                await gate.wait()
            else:
                await asyncio.sleep(self.delay)
            if case.case_id in self.plan:
                raise self.plan[case.case_id]
            return make_metadata(paper_id=f"{case.case_id}v1")
        finally:
            self.active -= 1

    async def chat(self, history, record, message) -> str:
        return "fake answer"

    async def close(self) -> None:
        pass


def make_metadata(paper_id: str = "2405.12345v1", **inputs: Any) -> ExtractedMetadata:
    """A small but complete record; ``inputs`` go to the verification engine."""
    defaults = {"pdf_id": paper_id, "html_id": paper_id}
    defaults.update(inputs)
    return ExtractedMetadata(
        paper_id=paper_id,
        title="Fast Learning",
        abstract="We learn fast.",
        keywords=["learning"],
        authors=[
            Author(
                first_name="Ada",
                surname="Lovelace",
                initials="A.",
                email="ada@example.org",
                orcid_id="0000-0001-2345-6789",
                is_corresponding=True,
                affiliation_refs=[0],
            ),
            Author(first_name="Alan", surname="Turing", initials="A.M.", affiliation_refs=[]),
        ],
        affiliations=[
            Affiliation(
                organizations=["University of London"],
                source_text="University of London, London, UK",
                city="London",
                country="United Kingdom",
                country_code="GBR",
            )
        ],
        references=[Reference(source_text="______, Miyamoto, A.", resolved_text="Kobayashi, A., Miyamoto, A.")],
        verification=verify(VerificationInputs(**defaults)),
    )


def tick_critical(machine, case: CaseRecord) -> None:
    """Tick every critical QC check so the case can be finalized."""
    for item in CRITICAL_ITEMS:
        machine.set_check(case, item)


def write_pdf(path: Path, text: str) -> Path:
    """Write a one-page PDF whose text layer is ``text``."""
    doc = fitz.open()
    page = doc.new_page()
    page.insert_textbox(fitz.Rect(36, 36, 576, 806), text, fontsize=8)
    doc.save(str(path))
    doc.close()
    return path


LONG_BODY = " ".join(["Fast learning is the study of learning quickly."] * 20)


