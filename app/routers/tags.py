from fastapi import APIRouter, Depends, Query
from typing import List
import logging

from app.dependencies.dependencies import get_current_principal, get_repository
from app.exceptions import ConflictException, DatabaseException
from app.image_service.models import Principal, TagCreate, TagItem
from app.repository import MetadataRepository, WriteStatus

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/tags",
    tags=["tags"]
)

@router.post("", response_model=TagItem, status_code=201)
def create_tag(
    body: TagCreate,
    principal: Principal = Depends(get_current_principal),
    repo: MetadataRepository = Depends(get_repository),
):
    """Creates a tag; names are stored lowercase and must be unique."""
    result = repo.create_tag(body.tag_name)
    if result.status is WriteStatus.CONFLICT:
        raise ConflictException("tag already exists")
    if not result.ok:
        raise DatabaseException(f"Failed to create tag: {result.detail}")
    log.info("User %s created tag %s", principal.id, result.value.id)
    return TagItem(id=result.value.id, tag_name=result.value.tag_name)

@router.get("", response_model=List[TagItem])
def search_tags(
    tag_name: str = Query("", alias="tagName"),
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, alias="pageSize"),
    principal: Principal = Depends(get_current_principal),
    repo: MetadataRepository = Depends(get_repository),
):
    """Finds tags whose name contains ``tagName``."""
    tags = repo.search_tags(tag_name.strip().lower(), page, page_size)
    return [TagItem(id=tag.id, tag_name=tag.tag_name) for tag in tags]
