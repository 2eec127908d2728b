"""
Documents and their link into the parent's `documentIds`.

Bytes go to the blob store before any metadata is written so no entity is
held while a file streams. The record and the parent link are then written in
one transaction; when that fails the freshly stored blob is removed again.
Blob removal is best-effort everywhere: failures are logged, never raised.
"""

from __future__ import annotations

from typing import Any, BinaryIO, Iterator

from ..db.dynamodb.errors import DdbConflict
from ..domain import validation
from ..domain.access_control import Actor, can_access_document, can_upload_to
from ..domain.models import DocumentType
from ..errors import Conflict, Forbidden, NotFound, ValidationError
from ..infrastructure.storage import blob_store
from ..observability.logging import get_logger
from ..repositories import documents_repo, responses_repo, rfps_repo
from ..settings import settings

log = get_logger("document_linkage")

_MAX_DESCRIPTION = 500


def _load_parent(parent_kind: str, parent_id: str) -> dict[str, Any] | None:
    if parent_kind == "rfp":
        return rfps_repo.get_rfp_by_id(parent_id)
    return responses_repo.get_response_by_id(parent_id)


def _parent_ref(document: dict[str, Any]) -> tuple[str, str]:
    if document.get("rfpId"):
        return "rfp", str(document["rfpId"])
    return "response", str(document.get("responseId") or "")


def _discard_blob(key: str, *, reason: str, document_id: str | None = None) -> None:
    try:
        found = blob_store.get_blob_store().delete(key)
    except Exception as e:  # noqa: BLE001
        log.warning("blob_delete_failed", storage_key=key, document_id=document_id, reason=reason, error=str(e))
        return
    if not found:
        log.info("blob_already_missing", storage_key=key, document_id=document_id, reason=reason)


def _load_accessible(document_id: str, actor: Actor) -> tuple[dict[str, Any], dict[str, Any] | None]:
    document = documents_repo.get_document_by_id(document_id)
    if not document:
        raise NotFound(message="Document not found", entity="document", entity_id=document_id)
    parent = _load_parent(*_parent_ref(document))
    if not can_access_document(document, parent, actor):
        raise Forbidden(message="Not authorized to access this document", entity="document", entity_id=document_id)
    return document, parent


def attach_document(
    actor: Actor,
    *,
    fileobj: BinaryIO,
    size: int,
    filename: str,
    content_type: str | None,
    document_type: str,
    description: str | None = None,
    rfp_id: str | None = None,
    response_id: str | None = None,
) -> dict[str, Any]:
    parent_kind, parent_id = validation.document_parent(document_type, rfp_id, response_id)
    ct = validation.upload(content_type, size, settings.max_upload_bytes)
    desc = (description or "").strip() or None
    if desc and len(desc) > _MAX_DESCRIPTION:
        raise ValidationError(message=f"Description cannot exceed {_MAX_DESCRIPTION} characters")

    parent = _load_parent(parent_kind, parent_id)
    if not parent:
        label = "RFP" if parent_kind == "rfp" else "Response"
        raise NotFound(message=f"{label} not found", entity=parent_kind, entity_id=parent_id)
    if not can_upload_to(parent, actor):
        raise Forbidden(
            message=f"You can only upload documents to your own {'RFPs' if parent_kind == 'rfp' else 'responses'}",
            entity=parent_kind,
            entity_id=parent_id,
        )

    key = blob_store.get_blob_store().store(fileobj, content_type=ct, file_name=filename)

    item = documents_repo.build_document_item(
        storage_key=key,
        original_filename=filename or key.rsplit("/", 1)[-1],
        file_size=size,
        content_type=ct,
        document_type=DocumentType(document_type).value,
        description=desc,
        parent_kind=parent_kind,
        parent_id=parent_id,
        uploaded_by=actor.id,
    )
    try:
        document = documents_repo.attach_document(item, parent_kind=parent_kind, parent_id=parent_id, owner_id=actor.id)
    except Exception as e:
        _discard_blob(key, reason="attach_failed", document_id=item.get("documentId"))
        if not isinstance(e, DdbConflict):
            raise
        # The parent vanished or changed hands between the check and the write.
        current = _load_parent(parent_kind, parent_id)
        if not current:
            raise NotFound(message="Parent no longer exists", entity=parent_kind, entity_id=parent_id) from None
        if not can_upload_to(current, actor):
            raise Forbidden(message="Not authorized to upload here", entity=parent_kind, entity_id=parent_id) from None
        raise Conflict(message="Document could not be attached; retry", entity="document") from None

    log.info(
        "document_attached",
        document_id=document.get("id"),
        parent=parent_kind,
        parent_id=parent_id,
        user_id=actor.id,
        size=size,
    )
    return document


def get_document(document_id: str, actor: Actor) -> dict[str, Any]:
    document, _parent = _load_accessible(document_id, actor)
    return document


def open_download(document_id: str, actor: Actor) -> tuple[dict[str, Any], Iterator[bytes]]:
    """Resolve access and open the blob stream; NotFound when the blob is gone."""
    document, _parent = _load_accessible(document_id, actor)
    chunks = blob_store.get_blob_store().retrieve(str(document.get("storageKey")))
    return document, chunks


def list_documents(
    actor: Actor,
    *,
    rfp_id: str | None = None,
    response_id: str | None = None,
    document_type: str | None = None,
) -> list[dict[str, Any]]:
    if document_type:
        try:
            document_type = DocumentType(document_type).value
        except ValueError:
            raise ValidationError(message="Unknown document type") from None

    if rfp_id or response_id:
        parent_kind, parent_id = ("rfp", rfp_id) if rfp_id else ("response", response_id)
        parent = _load_parent(parent_kind, str(parent_id))
        if not parent:
            raise NotFound(message="Parent not found", entity=parent_kind, entity_id=parent_id)
        rows = [
            d
            for d in documents_repo.list_documents_for_parent(parent_kind, str(parent_id))
            if can_access_document(d, parent, actor)
        ]
    else:
        rows = documents_repo.list_documents_by_uploader(actor.id)

    if document_type:
        rows = [d for d in rows if d.get("documentType") == document_type]
    return rows


def detach_document(document_id: str, actor: Actor) -> None:
    document, parent = _load_accessible(document_id, actor)
    parent_kind, parent_id = _parent_ref(document)

    try:
        documents_repo.detach_document(
            document_id, parent_kind=parent_kind, parent_id=parent_id, parent_exists=parent is not None
        )
    except DdbConflict:
        if not documents_repo.get_document_item(document_id):
            raise NotFound(message="Document not found", entity="document", entity_id=document_id) from None
        # The parent was deleted in between; drop the record on its own.
        documents_repo.detach_document(
            document_id,
            parent_kind=parent_kind,
            parent_id=parent_id,
            parent_exists=_load_parent(parent_kind, parent_id) is not None,
        )

    _discard_blob(str(document.get("storageKey")), reason="document_deleted", document_id=document_id)
    log.info("document_detached", document_id=document_id, parent=parent_kind, parent_id=parent_id, user_id=actor.id)
