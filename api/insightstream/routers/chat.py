from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from insightstream.conversation import SessionStore
from insightstream.deps import get_dispatcher, get_sessions
from insightstream.dispatch import Dispatcher
from insightstream.redis_store import log_event
from insightstream.schemas import ChatMessageRequest, HistoryResponse

router = APIRouter(prefix="/api/chat", tags=["chat"])


# ===== Chat router =====

@router.post("")
def chat(
    req: ChatMessageRequest,
    sessions: SessionStore = Depends(get_sessions),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    session = sessions.get_or_create(req.session_id)

    # one message at a time per session, so turns stay in send order
    with session.lock:
        # an evicted dataset is the same as none: rejected before the log changes
        ref = sessions.current_dataset(session)
        result = dispatcher.handle_message(req.message, ref, session.log)
        dataset = session.dataset_ref.to_info() if session.dataset_ref else None

    log_event(
        req.session_id,
        f"chat_reply_{result.route}",
        {"message": req.message, "success": result.success, "reply": result.reply, "error": result.error},
    )

    body = {**result.to_dict(), "dataset": dataset}
    if not result.success:
        return JSONResponse(status_code=502, content=body)
    return body


@router.get("/{session_id}/history", response_model=HistoryResponse)
def history(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    session = sessions.get(session_id)
    if session is None:
        return {"session_id": session_id, "turns": []}
    return {
        "session_id": session_id,
        "turns": session.log.to_list(),
        "dataset": session.dataset_ref.to_info() if session.dataset_ref else None,
    }


@router.post("/{session_id}/reset")
def reset(session_id: str, sessions: SessionStore = Depends(get_sessions)):
    existed = sessions.reset(session_id)
    log_event(session_id, "session_reset", {"existed": existed})
    return {"success": True, "sessionId": session_id}
