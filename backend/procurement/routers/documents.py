from __future__ import annotations

import re
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from ..domain.access_control import Actor
from ..services import document_linkage
from .deps import current_actor

router = APIRouter(tags=["documents"])


def _content_disposition(filename: str) -> str:
    # Header values are latin-1; the ASCII fallback plus RFC 5987 form keeps any name intact.
    fallback = re.sub(r'[^A-Za-z0-9._ -]', "_", filename) or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@router.post("/upload", status_code=201)
def upload_document(
    file: UploadFile = File(...),
    documentType: str = Form(...),
    description: str | None = Form(None),
    rfpId: str | None = Form(None),
    responseId: str | None = Form(None),
    actor: Actor = Depends(current_actor),
):
    f = file.file
    f.seek(0, 2)
    size = f.tell()
    f.seek(0)

    document = document_linkage.attach_document(
        actor,
        fileobj=f,
        size=size,
        filename=file.filename or "",
        content_type=file.content_type,
        document_type=documentType,
        description=description,
        rfp_id=rfpId,
        response_id=responseId,
    )
    return {"message": "Document uploaded successfully", "data": document}


@router.get("")
def list_documents(
    rfpId: str | None = None,
    responseId: str | None = None,
    documentType: str | None = None,
    actor: Actor = Depends(current_actor),
):
    rows = document_linkage.list_documents(
        actor, rfp_id=rfpId, response_id=responseId, document_type=documentType
    )
    return {"data": rows}


@router.get("/{document_id}")
def get_document(document_id: str, actor: Actor = Depends(current_actor)):
    return {"data": document_linkage.get_document(document_id, actor)}


@router.get("/{document_id}/download")
def download_document(document_id: str, actor: Actor = Depends(current_actor)):
    document, chunks = document_linkage.open_download(document_id, actor)
    filename = str(document.get("originalFilename") or document.get("filename") or "download")
    return StreamingResponse(
        chunks,
        media_type=str(document.get("contentType") or "application/octet-stream"),
        headers={"Content-Disposition": _content_disposition(filename)},
    )


@router.delete("/{document_id}")
def delete_document(document_id: str, actor: Actor = Depends(current_actor)):
    document_linkage.detach_document(document_id, actor)
    return {"message": "Document deleted successfully"}
