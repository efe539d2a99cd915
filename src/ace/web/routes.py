"""JSON API routes for the operator console.

Endpoints cover the whole case lifecycle: importing input files,
processing (single case or everything pending), review actions
(edit, override, QC checklist, finalize QC), XML export, the document chat, and
session reset with its archive.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from ..cases.checklist import ChecklistItem
from ..cases.models import CaseRecord
from ..cases.session import Session
from ..core.models import ExtractedMetadata

router = APIRouter(prefix="/api")


class ImportRequest(BaseModel):
    """Directory holding the PDF/HTML/scrape/API files to group into cases."""

    directory: str


class ProcessRequest(BaseModel):
    manual_id: Optional[str] = None


class OverrideRequest(BaseModel):
    operator: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)


class ChecklistRequest(BaseModel):
    item: ChecklistItem
    checked: bool = True


class ChatTurn(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)
    history: List[ChatTurn] = Field(default_factory=list)


def get_session(request: Request) -> Session:
    return request.app.state.session


def case_summary(case: CaseRecord) -> Dict[str, Any]:
    verification = case.extracted.verification if case.extracted else None
    return {
        "case_id": case.case_id,
        "display_name": case.display_name,
        "status": case.status.value,
        "files": case.files.to_dict(),
        "manual_id": case.manual_id,
        "verification_status": verification.status.value if verification else None,
        "verification_message": verification.message if verification else None,
        "paper_id": case.extracted.paper_id if case.extracted else None,
        "error_message": case.error_message,
        "error_kind": case.error_kind,
        "is_edited": case.is_edited,
        "is_overridden": case.is_overridden,
        "is_finalized": case.is_finalized,
        "qc_checks": sorted(item.value for item in case.qc_checks),
        "checklist_complete": case.checklist_complete,
        "extraction_seconds": case.timing.extraction_duration,
        "qc_seconds": case.timing.qc_duration,
    }


def case_detail(case: CaseRecord) -> Dict[str, Any]:
    detail = case_summary(case)
    detail["timing"] = case.timing.to_dict()
    detail["overrides"] = [o.to_dict() for o in case.overrides]
    detail["extracted"] = (
        case.extracted.model_dump(mode="json", exclude={"document_text"}) if case.extracted else None
    )
    return detail


@router.post("/cases/import")
async def import_cases(body: ImportRequest, session: Session = Depends(get_session)) -> Dict[str, Any]:
    directory = Path(body.directory)
    if not directory.is_dir():
        raise ValueError(f"Not a directory: {body.directory}")
    added = session.import_directory(directory)
    return {"added": [case_summary(c) for c in added], "total": len(session.cases)}


@router.get("/cases")
async def list_cases(session: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    return [case_summary(c) for c in session.list_cases()]


@router.get("/cases/{case_id}")
async def get_case(case_id: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return case_detail(session.get(case_id))


@router.post("/cases/process-all")
async def process_all(wait: bool = False, session: Session = Depends(get_session)) -> Dict[str, Any]:
    queued = session.process_all()
    if wait:
        await session.wait()
    return {"queued": queued, "complete": session.is_complete, "stats": session.stats().to_dict()}


@router.post("/cases/{case_id}/process")
async def process_case(
    case_id: str,
    body: Optional[ProcessRequest] = None,
    wait: bool = False,
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    queued = session.process(case_id, manual_id=body.manual_id if body else None)
    if wait:
        await session.wait()
    return {"queued": queued, "case": case_summary(session.get(case_id))}


@router.post("/cases/{case_id}/cancel")
async def cancel_case(case_id: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    cancelled = await session.cancel(case_id)
    return {"cancelled": cancelled, "case": case_summary(session.get(case_id))}


@router.put("/cases/{case_id}/record")
async def save_record(
    case_id: str, record: ExtractedMetadata, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    return case_detail(session.save_edit(case_id, record))


@router.post("/cases/{case_id}/override")
async def override_case(
    case_id: str, body: OverrideRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    entry = session.record_override(case_id, body.operator, body.reason)
    return {"override": entry.to_dict(), "case": case_summary(session.get(case_id))}


@router.get("/cases/{case_id}/checklist")
async def get_checklist(case_id: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return session.checklist(case_id)


@router.post("/cases/{case_id}/checklist")
async def set_check(
    case_id: str, body: ChecklistRequest, session: Session = Depends(get_session)
) -> Dict[str, Any]:
    session.set_check(case_id, body.item, body.checked)
    return session.checklist(case_id)


@router.post("/cases/{case_id}/finalize")
async def finalize_case(case_id: str, session: Session = Depends(get_session)) -> Dict[str, Any]:
    return case_summary(session.finalize_qc(case_id))


@router.get("/cases/{case_id}/xml")
async def export_xml(case_id: str, session: Session = Depends(get_session)) -> Response:
    xml = session.render_xml(case_id)
    filename = session.exporter.default_filename(session.get(case_id).extracted)
    return Response(
        content=xml,
        media_type="application/xml",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/cases/{case_id}/chat")
async def chat(case_id: str, body: ChatRequest, session: Session = Depends(get_session)) -> Dict[str, str]:
    answer = await session.chat(case_id, [t.model_dump() for t in body.history], body.message)
    return {"answer": answer}


@router.get("/stats")
async def stats(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return {**session.stats().to_dict(), "complete": session.is_complete}


@router.post("/session/reset")
async def reset_session(session: Session = Depends(get_session)) -> Dict[str, Any]:
    archived = await session.reset()
    return {"archived": archived.session_id if archived else None}


@router.get("/history")
async def history(session: Session = Depends(get_session)) -> List[Dict[str, Any]]:
    return [
        {
            "session_id": h.session_id,
            "timestamp": h.timestamp.isoformat(),
            "stats": {"total": h.stats.total, "completed": h.stats.completed, "avgDuration": h.stats.avg_duration},
            "cases": [case_summary(c) for c in h.cases],
        }
        for h in session.load_history()
    ]
