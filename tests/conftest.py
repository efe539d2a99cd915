"""Shared pytest fixtures."""

from pathlib import Path
from typing import Dict, Optional

import pytest

from ace.cases.models import CaseFiles, CaseRecord
from ace.utils.rate_limit import RateLimiter

from .helpers import LONG_BODY, RecordingSleep, write_pdf


@pytest.fixture
def fast_limiter() -> RateLimiter:
    return RateLimiter(rate=1000.0)


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def pdf_case(tmp_path: Path):
    """Factory for a case with a PDF and optional auxiliary files."""

    def _make(
        pdf_name: str = "2405.12345v1.pdf",
        pdf_text: str = "Fast Learning\n" + LONG_BODY,
        html: Optional[str] = None,
        scrape: Optional[str] = None,
        api: Optional[str] = None,
        case_id: str = "2405.12345",
    ) -> CaseRecord:
        files: Dict[str, Path] = {"pdf": write_pdf(tmp_path / pdf_name, pdf_text)}
        for kind, content in (("html", html), ("scrape", scrape), ("api", api)):
            if content is not None:
                suffix = {"html": ".html", "scrape": "_scrape.txt", "api": "_api.json"}[kind]
                path = tmp_path / f"{case_id}{suffix}"
                path.write_text(content, encoding="utf-8")
                files[kind] = path
        return CaseRecord(case_id=case_id, display_name=case_id, files=CaseFiles(**files))

    return _make
