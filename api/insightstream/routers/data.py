from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import Response

from insightstream.conversation import DatasetRef, SessionStore
from insightstream.data_service import DataService
from insightstream.deps import get_data_service, get_sessions
from insightstream.schemas import DataAskRequest, DataRequest, ProcessRequest, RowUpdateRequest

router = APIRouter(prefix="/api/data", tags=["data"])


@router.post("/upload")
def upload(
    file: UploadFile = File(..., description="CSV file to analyze"),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    service: DataService = Depends(get_data_service),
    sessions: SessionStore = Depends(get_sessions),
):
    """
    Parse the CSV, keep it server-side and return its metadata envelope.
    With a sessionId the dataset also becomes that chat session's dataset.
    """
    file.file.seek(0)
    raw = file.file.read()
    out = service.upload(raw, file.filename or "")
    if session_id:
        sessions.attach_dataset(session_id, DatasetRef.from_info(out["info"]))
    return out


@router.post("/process")
def process(req: ProcessRequest, service: DataService = Depends(get_data_service)):
    return service.process_command(req.data_id, req.command)


@router.post("/insights")
def insights(req: DataRequest, service: DataService = Depends(get_data_service)):
    return service.get_insights(req.data_id)


@router.post("/ask")
def ask(req: DataAskRequest, service: DataService = Depends(get_data_service)):
    return service.ask_question(req.data_id, req.question)


@router.get("/download/{data_id}")
def download(data_id: str, service: DataService = Depends(get_data_service)):
    body, filename = service.download(data_id)
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{data_id}")
def read(
    data_id: str,
    offset: int = Query(0, ge=0),
    limit: Optional[int] = Query(None, ge=1),
    service: DataService = Depends(get_data_service),
):
    return service.describe(data_id, offset=offset, limit=limit)


@router.patch("/{data_id}/rows/{row_index}")
def update_row(data_id: str, row_index: int, req: RowUpdateRequest, service: DataService = Depends(get_data_service)):
    return service.update_row(data_id, row_index, req.values)


@router.delete("/{data_id}/rows/{row_index}")
def delete_row(data_id: str, row_index: int, service: DataService = Depends(get_data_service)):
    return service.delete_row(data_id, row_index)


@router.delete("/{data_id}")
def delete(data_id: str, service: DataService = Depends(get_data_service)):
    service.delete(data_id)
    return {"success": True, "dataId": data_id}
