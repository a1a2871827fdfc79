from __future__ import annotations
"""
Logs router exposing the per-session event log kept by ``redis_store``.
Dataset operations are logged under their dataId, chat under the sessionId.
"""
from fastapi import APIRouter
from insightstream.redis_store import read_logs

router = APIRouter(prefix="/api/logs", tags=["logs"])

@router.get("/{session_id}")
def read(session_id: str, last_n: int = 200):
    return {"session_id": session_id, "items": read_logs(session_id, last_n=last_n)}
