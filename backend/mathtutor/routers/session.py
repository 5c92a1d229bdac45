from __future__ import annotations
import json
import logging
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..backends import LocalBackend, TutorBackend
from ..db import SessionLocal, get_db
from ..models import TutorSessionRecord
from ..orchestrator import SessionSummary, TurnOrchestrator
from ..session_state import SessionState
from ..settings import settings


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


class MessageRequest(BaseModel):
    message: str = Field(description="Student input for this turn")


_sessions: Dict[str, TurnOrchestrator] = {}


def get_backend() -> TutorBackend:
    return LocalBackend()


def get_clock() -> Callable[[], float]:
    return time.monotonic


def _persist_summary(session_id: str) -> Callable[[SessionSummary], None]:
    def save(summary: SessionSummary) -> None:
        db = SessionLocal()
        try:
            row = TutorSessionRecord(
                session_id=session_id,
                end_reason=summary.reason,
                understanding_score=summary.understanding_score,
                warning_count=summary.warning_count,
                current_step=summary.current_step,
                message_count=len(summary.messages),
                started_at=datetime.utcfromtimestamp(summary.started_at) if summary.started_at else None,
                transcript_json=json.dumps([m.model_dump() for m in summary.messages]),
            )
            db.add(row)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed to store summary for session %s", session_id)
        finally:
            db.close()

    return save


def _get_session(session_id: str) -> TurnOrchestrator:
    orchestrator = _sessions.get(session_id)
    if orchestrator is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return orchestrator


def _response(session_id: str, orchestrator: TurnOrchestrator) -> Dict[str, Any]:
    return {"session_id": session_id, **orchestrator.snapshot()}


async def sweep_sessions(retention_seconds: Optional[float] = None) -> int:
    """Bring every session up to the current clock and drop the ones finished longer than the retention window.

    Abandoned sessions time out here, which also stores their summary.
    """
    retention = settings.session_retention_seconds if retention_seconds is None else retention_seconds
    removed = 0
    for session_id, orchestrator in list(_sessions.items()):
        orchestrator.advance_clock()
        await orchestrator.settle()
        finished_for = orchestrator.seconds_since_end()
        if finished_for is not None and finished_for >= retention:
            _sessions.pop(session_id, None)
            removed += 1
    if removed:
        logger.info("Dropped %d finished sessions", removed)
    return removed


@router.post("")
async def create_session(
    backend: TutorBackend = Depends(get_backend),
    clock: Callable[[], float] = Depends(get_clock),
):
    session_id = uuid.uuid4().hex
    orchestrator = TurnOrchestrator(
        SessionState(),
        backend,
        on_session_end=_persist_summary(session_id),
        clock=clock,
    )
    _sessions[session_id] = orchestrator
    orchestrator.start()
    await orchestrator.settle()
    logger.info("Created session %s", session_id)
    return _response(session_id, orchestrator)


@router.get("/history")
def session_history(limit: int = 20, db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    limit = max(1, min(limit, 100))
    rows = db.query(TutorSessionRecord).order_by(TutorSessionRecord.id.desc()).limit(limit).all()
    return [
        {
            "session_id": r.session_id,
            "end_reason": r.end_reason,
            "understanding_score": r.understanding_score,
            "warning_count": r.warning_count,
            "current_step": r.current_step,
            "message_count": r.message_count,
            "started_at": r.started_at.isoformat() if r.started_at else None,
            "ended_at": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]


@router.get("/{session_id}")
async def get_session(session_id: str):
    orchestrator = _get_session(session_id)
    orchestrator.advance_clock()
    await orchestrator.settle()
    return _response(session_id, orchestrator)


@router.post("/{session_id}/message")
async def send_message(session_id: str, req: MessageRequest):
    orchestrator = _get_session(session_id)
    orchestrator.advance_clock()
    orchestrator.submit(req.message)
    await orchestrator.settle()
    return _response(session_id, orchestrator)


@router.post("/{session_id}/restart")
async def restart_session(session_id: str):
    orchestrator = _get_session(session_id)
    orchestrator.restart()
    await orchestrator.settle()
    return _response(session_id, orchestrator)


@router.post("/{session_id}/end")
async def end_session(session_id: str):
    orchestrator = _get_session(session_id)
    orchestrator.advance_clock()
    orchestrator.end()
    await orchestrator.settle()
    _sessions.pop(session_id, None)
    return _response(session_id, orchestrator)
