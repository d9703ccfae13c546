from fastapi import APIRouter, Depends, UploadFile, File, Form, Query, Response
from typing import Optional
import logging
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from app.dependencies.dependencies import get_current_principal, get_repository, get_s3_service
from app.exceptions import ValidationException
from app.image_service.models import ListImagesParams, ListImagesResponse, Principal, UploadResponse
from app.image_service.service import ingest_image, list_images, parse_tag_ids, validate_upload
from app.repository import MetadataRepository
from app.settings import settings
from app.storage.s3 import S3Service

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["images"]
)

def listing_params(
    page: int = Query(1),
    page_size: int = Query(8, alias="pageSize"),
    title: Optional[str] = Query(None),
    tag_id: Optional[int] = Query(None, alias="tagId"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    order: Optional[str] = Query(None),
) -> ListImagesParams:
    """Collects the listing query string into validated parameters."""
    try:
        return ListImagesParams(
            page=page,
            page_size=page_size,
            title=title,
            tag_id=tag_id,
            sort_by=sort_by,
            order=order,
        )
    except ValidationError as e:
        error = e.errors()[0]
        path = [ListImagesParams.model_fields[loc].alias or loc
                for loc in error["loc"] if loc in ListImagesParams.model_fields]
        raise ValidationException(error["msg"], path=path)

@router.post("", response_model=UploadResponse, status_code=201)
async def upload_image(
    file: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    tags: Optional[str] = Form(None),  # JSON array of tag ids
    response: Response = None,
    principal: Principal = Depends(get_current_principal),
    repo: MetadataRepository = Depends(get_repository),
    s3: S3Service = Depends(get_s3_service),
):
    """Uploads an image, stores a normalized JPEG copy and links its tags."""
    if response:
        response.headers["X-Content-Type-Options"] = "nosniff"

    contents = None
    content_type = None
    if file is not None:
        # One byte past the cap is enough to know the upload is too large
        contents = await file.read(settings.max_upload_bytes + 1)
        content_type = file.content_type

    validate_upload(contents, content_type)
    tag_ids = parse_tag_ids(tags)

    image = await run_in_threadpool(
        ingest_image,
        repo,
        s3,
        file_bytes=contents,
        content_type=content_type,
        title=title,
        tag_ids=tag_ids,
        principal=principal,
    )
    return UploadResponse(image=image)

@router.get("", response_model=ListImagesResponse)
async def list_images_handler(
    principal: Principal = Depends(get_current_principal),
    params: ListImagesParams = Depends(listing_params),
    repo: MetadataRepository = Depends(get_repository),
    s3: S3Service = Depends(get_s3_service),
):
    """Lists the caller's images filtered by title and tag, one page at a time."""
    return await list_images(repo, s3, principal, params)
