"""
Project documents: upload, listing and download.
"""

import logging
from typing import List, NamedTuple, Optional

from database import create_document, get_collection, parse_object_id
from errors import InvalidInput, NotFound
from policy import Action, enforce
from project_service import get_project
from schemas import Document
from security import Principal
from storage import LocalBlobStore

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class DownloadedDocument(NamedTuple):
    content: bytes
    filename: str
    mime_type: str


def serialize_document(doc: dict, uploader: Optional[dict] = None) -> dict:
    return {
        "id": str(doc["_id"]),
        "original_filename": doc["original_filename"],
        "storage_filename": doc["storage_filename"],
        "mime_type": doc["mime_type"],
        "size": doc["size"],
        "project": str(doc["project"]),
        "uploaded_by": (
            {"id": str(uploader["_id"]), "username": uploader["username"]}
            if uploader else str(doc["uploaded_by"])
        ),
        "created_at": doc.get("created_at"),
    }


def upload_document(principal: Principal, store: LocalBlobStore, project_id: str,
                    filename: Optional[str], mime_type: Optional[str], data: Optional[bytes]) -> dict:
    project = get_project(project_id)
    enforce(principal, Action.UPLOAD_DOCUMENT, project)

    if not filename or data is None:
        raise InvalidInput("Please upload a file")

    key = store.store(data, filename)
    try:
        doc = create_document("document", Document(
            original_filename=filename,
            storage_filename=key,
            mime_type=mime_type or DEFAULT_MIME_TYPE,
            size=len(data),
            project=project["_id"],
            uploaded_by=parse_object_id(principal.user_id),
        ))
    except Exception:
        # no record means the blob would never be reachable
        store.delete(key)
        raise

    logger.info("Document %s uploaded to project %s by %s", key, project_id, principal.user_id)
    return serialize_document(doc)


def list_documents(principal: Principal, project_id: str) -> List[dict]:
    enforce(principal, Action.LIST_DOCUMENTS)
    project_oid = parse_object_id(project_id)
    if project_oid is None:
        return []
    docs = list(get_collection("document").find({"project": project_oid}))

    uploader_ids = list({d["uploaded_by"] for d in docs})
    uploaders = {}
    if uploader_ids:
        cursor = get_collection("user").find({"_id": {"$in": uploader_ids}}, {"username": 1})
        uploaders = {u["_id"]: u for u in cursor}
    return [serialize_document(d, uploaders.get(d["uploaded_by"])) for d in docs]


def download_document(principal: Principal, store: LocalBlobStore, document_id: str) -> DownloadedDocument:
    enforce(principal, Action.DOWNLOAD_DOCUMENT)
    oid = parse_object_id(document_id)
    doc = get_collection("document").find_one({"_id": oid}) if oid else None
    if not doc or not doc.get("storage_filename"):
        raise NotFound("Document record not found or is invalid")

    content = store.retrieve(doc["storage_filename"])
    return DownloadedDocument(content=content, filename=doc["original_filename"], mime_type=doc["mime_type"])
