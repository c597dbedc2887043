"""Guarded links into the document backend.

Each endpoint runs the access guard for its target and, on allow, returns
the backend URL for it. Document links accept the document's containers
in the query string (``folder_id``, ``tag_ids``, ``category_id``) so that
access inherited from a folder, tag or category is honoured.
"""

import logging
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..core.access_guard import metadata_from_query, require_target_access
from ..core.auth import AuthContext
from ..core.config import settings
from ..models.access_rule import TargetType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["resources"])

# Backend REST paths per target type (folders are cabinets, categories are document types).
_BACKEND_PATHS: Dict[TargetType, str] = {
    TargetType.DOCUMENT: "/api/v4/documents/{id}/",
    TargetType.FOLDER: "/api/v4/cabinets/{id}/",
    TargetType.TAG: "/api/v4/tags/{id}/",
    TargetType.CATEGORY: "/api/v4/document_types/{id}/",
}


class ResourceLink(BaseModel):
    target_type: TargetType
    target_id: str
    url: str


def backend_url(target_type: TargetType, target_id: str) -> str:
    path = _BACKEND_PATHS[TargetType(target_type)].format(id=target_id)
    return f"{settings.document_backend_url}{path}"


def _link(target_type: TargetType, target_id: str) -> ResourceLink:
    return ResourceLink(target_type=target_type, target_id=target_id, url=backend_url(target_type, target_id))


@router.get("/documents/{document_id}/link", response_model=ResourceLink)
def document_link(
    document_id: str,
    auth: AuthContext = Depends(
        require_target_access(TargetType.DOCUMENT, "document_id", get_metadata=metadata_from_query)
    ),
):
    return _link(TargetType.DOCUMENT, document_id)


@router.get("/folders/{folder_id}/link", response_model=ResourceLink)
def folder_link(
    folder_id: str,
    auth: AuthContext = Depends(require_target_access(TargetType.FOLDER, "folder_id")),
):
    return _link(TargetType.FOLDER, folder_id)


@router.get("/tags/{tag_id}/link", response_model=ResourceLink)
def tag_link(
    tag_id: str,
    auth: AuthContext = Depends(require_target_access(TargetType.TAG, "tag_id")),
):
    return _link(TargetType.TAG, tag_id)


@router.get("/categories/{category_id}/link", response_model=ResourceLink)
def category_link(
    category_id: str,
    auth: AuthContext = Depends(require_target_access(TargetType.CATEGORY, "category_id")),
):
    return _link(TargetType.CATEGORY, category_id)
