from __future__ import annotations

from typing import Any

from boto3.dynamodb.conditions import Key

from ..db.dynamodb.table import get_main_table
from ..domain import clock
from . import responses_repo, rfps_repo
from .common import Expr, new_id, strip_storage_keys, to_ddb

# parent kind -> (key builder, owner attribute)
PARENTS = {
    "rfp": (rfps_repo.rfp_key, "createdBy"),
    "response": (responses_repo.response_key, "submittedBy"),
}


def document_key(document_id: str) -> dict[str, str]:
    return {"pk": f"DOCUMENT#{document_id}", "sk": "PROFILE"}


def parent_documents_pk(parent_kind: str, parent_id: str) -> str:
    return f"{parent_kind.upper()}#{parent_id}#DOCUMENTS"


def owner_documents_pk(user_id: str) -> str:
    return f"OWNER#{user_id}#DOCUMENTS"


def readable_size(num_bytes: int) -> str:
    if num_bytes <= 0:
        return "0 Bytes"
    size = float(num_bytes)
    for unit in ("Bytes", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            out = f"{size:.2f}".rstrip("0").rstrip(".")
            return f"{out} {unit}"
        size /= 1024
    return f"{num_bytes} Bytes"


def normalize_document_for_api(item: dict[str, Any] | None) -> dict[str, Any] | None:
    if not item:
        return None
    obj = strip_storage_keys(item)
    obj["id"] = item.get("documentId")
    obj.pop("documentId", None)
    obj["readableSize"] = readable_size(int(obj.get("fileSize") or 0))
    return obj


def build_document_item(
    *,
    storage_key: str,
    original_filename: str,
    file_size: int,
    content_type: str,
    document_type: str,
    description: str | None,
    parent_kind: str,
    parent_id: str,
    uploaded_by: str,
) -> dict[str, Any]:
    document_id = new_id("doc")
    created_at = clock.now_iso()
    item: dict[str, Any] = {
        **document_key(document_id),
        "entityType": "Document",
        "documentId": document_id,
        "filename": storage_key.rsplit("/", 1)[-1],
        "originalFilename": original_filename,
        "fileSize": int(file_size),
        "contentType": content_type,
        "documentType": document_type,
        "uploadedBy": uploaded_by,
        "storageKey": storage_key,
        "createdAt": created_at,
        "gsi1pk": parent_documents_pk(parent_kind, parent_id),
        "gsi1sk": f"{created_at}#{document_id}",
        "gsi2pk": owner_documents_pk(uploaded_by),
        "gsi2sk": f"{created_at}#{document_id}",
    }
    item["rfpId" if parent_kind == "rfp" else "responseId"] = parent_id
    if description:
        item["description"] = description
    return to_ddb(item)


def attach_document(item: dict[str, Any], *, parent_kind: str, parent_id: str, owner_id: str) -> dict[str, Any]:
    """
    Persist the record and link it into the parent's `documentIds` set in one
    transaction; the parent must still exist and be owned by `owner_id`.
    """
    key_fn, owner_attr = PARENTS[parent_kind]
    t = get_main_table()
    link = Expr().add("documentIds", {item["documentId"]}).exists("pk").eq(owner_attr, owner_id)
    t.transact_write(
        puts=[t.tx_put(item=item, condition_expression="attribute_not_exists(pk)")],
        updates=[t.tx_update(key=key_fn(parent_id), **link.update_kwargs())],
    )
    return normalize_document_for_api(item) or {}


def detach_document(document_id: str, *, parent_kind: str, parent_id: str, parent_exists: bool) -> None:
    t = get_main_table()
    record = Expr().exists("pk")
    deletes = [t.tx_delete(key=document_key(document_id), **record.condition_kwargs())]
    if not parent_exists:
        t.transact_write(deletes=deletes)
        return

    key_fn, _owner_attr = PARENTS[parent_kind]
    unlink = Expr().delete("documentIds", {document_id}).exists("pk")
    t.transact_write(deletes=deletes, updates=[t.tx_update(key=key_fn(parent_id), **unlink.update_kwargs())])


def get_document_item(document_id: str) -> dict[str, Any] | None:
    return get_main_table().get_item(key=document_key(document_id))


def get_document_by_id(document_id: str) -> dict[str, Any] | None:
    return normalize_document_for_api(get_document_item(document_id))


def _collect(pk_attr: str, pk_value: str, index_name: str) -> list[dict[str, Any]]:
    t = get_main_table()
    items: list[dict[str, Any]] = []
    tok: str | None = None
    while True:
        pg = t.query_page(
            index_name=index_name,
            key_condition_expression=Key(pk_attr).eq(pk_value),
            scan_index_forward=False,
            limit=200,
            next_token=tok,
        )
        items.extend(pg.items)
        tok = pg.next_token
        if not tok or not pg.items:
            break
    return [n for n in (normalize_document_for_api(it) for it in items) if n]


def list_documents_for_parent(parent_kind: str, parent_id: str) -> list[dict[str, Any]]:
    return _collect("gsi1pk", parent_documents_pk(parent_kind, parent_id), "GSI1")


def list_documents_by_uploader(user_id: str) -> list[dict[str, Any]]:
    return _collect("gsi2pk", owner_documents_pk(user_id), "GSI2")
