from typing import Any, Dict, List, Optional, Set
import asyncio
import json
import logging
import math
import uuid

from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from app.exceptions import (
    ConflictException,
    DatabaseException,
    InvalidImageException,
    InvalidTagException,
    PageOutOfRangeException,
    S3UploadException,
    ValidationException,
)
from app.image_service.models import (
    ListImagesParams,
    ListImagesResponse,
    ListedImage,
    Principal,
    TagItem,
    UploadedImage,
)
from app.image_service.query_builder import ImageQuery
from app.image_service.transcoder import OUTPUT_EXTENSION, OUTPUT_MIME_TYPE, transcode
from app.repository import MetadataRepository, WriteStatus
from app.settings import settings
from app.storage.s3 import S3Service

log = logging.getLogger(__name__)

ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png"}
MAX_TAGS = 5
TITLE_MIN_LENGTH = 3
TITLE_MAX_LENGTH = 60


def image_id_key() -> str:
    """Generates a new unique object key for a stored image."""
    return f"{uuid.uuid4()}{OUTPUT_EXTENSION}"


def parse_tag_ids(raw: Optional[str]) -> Optional[Set[int]]:
    """Decodes the JSON tag id array sent with an upload."""
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise InvalidTagException("Invalid JSON format for tags")
    return validate_tag_ids(value)


def validate_tag_ids(value: Any) -> Set[int]:
    if not isinstance(value, list):
        raise InvalidTagException('"tags" must be an array')
    if not 1 <= len(value) <= MAX_TAGS:
        raise InvalidTagException(f'"tags" must contain between 1 and {MAX_TAGS} items')
    for item in value:
        if isinstance(item, bool) or not isinstance(item, int) or item < 1:
            raise InvalidTagException('"tags" must contain only positive integers')
    return set(value)


def validate_title(title: Optional[str]) -> Optional[str]:
    if title is None:
        if settings.require_title:
            raise ValidationException('"title" is required', path=["title"])
        return None
    title = title.strip()
    if not TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH:
        raise ValidationException(
            f'"title" length must be between {TITLE_MIN_LENGTH} and {TITLE_MAX_LENGTH} characters',
            path=["title"],
        )
    return title


def validate_upload(file_bytes: Optional[bytes], content_type: Optional[str]) -> None:
    """Cheap checks on the raw upload, run before any decoding or I/O."""
    if not file_bytes:
        raise InvalidImageException("Please provide an image file for upload (jpg or png).")
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException("Invalid file type. Please upload an image (jpg or png).")
    if len(file_bytes) > settings.max_upload_bytes:
        raise InvalidImageException("File size exceeds the limit of 2 MB.")


def ingest_image(
    repo: MetadataRepository,
    s3: S3Service,
    *,
    file_bytes: Optional[bytes],
    content_type: Optional[str],
    title: Optional[str],
    tag_ids: Optional[Set[int]],
    principal: Principal,
) -> UploadedImage:
    """Validates, transcodes and stores one image, then links its tags."""
    validate_upload(file_bytes, content_type)
    if tag_ids is not None:
        tag_ids = validate_tag_ids(sorted(tag_ids))
    title = validate_title(title)

    tags = []
    if tag_ids:
        tags = repo.get_tags_by_ids(tag_ids)
        if not tags:
            raise InvalidTagException("Invalid tag ids")

    transcoded = transcode(file_bytes)

    key = image_id_key()
    object_key = s3.object_key(principal.username, key)
    try:
        s3.upload(data=transcoded.data, key=object_key, content_type=OUTPUT_MIME_TYPE)
    except (BotoCoreError, ClientError) as e:
        log.error(f"S3 upload failed: {e}")
        raise S3UploadException(f"Failed to upload image to S3: {e}")

    # The object is stored from here on; failures below leave it orphaned
    result = repo.insert_image(
        title=title,
        key=key,
        mime_type=OUTPUT_MIME_TYPE,
        width=transcoded.width,
        height=transcoded.height,
        file_size=transcoded.size,
        user_id=principal.id,
    )
    if result.status is WriteStatus.CONFLICT:
        log.warning("Image key %s conflicted; object %s is orphaned", key, object_key)
        raise ConflictException("image key already exists")
    if not result.ok:
        log.warning("Image metadata insert failed; object %s is orphaned", object_key)
        raise DatabaseException(f"Failed to save image metadata: {result.detail}")
    image = result.value

    try:
        url = s3.generate_presigned_url(object_key)
    except (BotoCoreError, ClientError) as e:
        log.error(f"Failed to generate presigned URL: {e}")
        raise S3UploadException(f"Failed to generate download URL: {e}")

    link = repo.insert_image_tags(image.id, [tag.id for tag in tags])
    if not link.ok:
        log.warning("Image %s stored without its %d tags: %s", image.id, len(tags), link.detail)
        raise DatabaseException(f"Failed to save image tags: {link.detail}")

    log.info("Ingested image %s for user %s with %d tags", image.id, principal.id, len(tags))
    return UploadedImage(
        id=image.id,
        title=image.title,
        key=image.key,
        mime_type=image.mime_type,
        width=image.width,
        height=image.height,
        file_size=image.file_size,
        user_id=image.user_id,
        upload_at=image.upload_at,
        url=url,
        tags=[TagItem(id=tag.id, tag_name=tag.tag_name) for tag in tags],
    )


async def attach_urls(s3: S3Service, username: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Signs a URL for every row concurrently; results keep the row order."""
    semaphore = asyncio.Semaphore(settings.presign_concurrency)

    async def sign(row: Dict[str, Any]) -> Dict[str, Any]:
        async with semaphore:
            try:
                url = await run_in_threadpool(s3.generate_presigned_url, s3.object_key(username, row["key"]))
            except (BotoCoreError, ClientError) as e:
                log.error(f"Failed to generate presigned URL: {e}")
                raise S3UploadException(f"Failed to generate download URL: {e}")
        return {**row, "url": url}

    return list(await asyncio.gather(*(sign(row) for row in rows)))


async def list_images(
    repo: MetadataRepository,
    s3: S3Service,
    principal: Principal,
    params: ListImagesParams,
) -> ListImagesResponse:
    """Returns one page of the caller's images with tags and fresh URLs."""
    if params.tag_id is not None:
        if not await run_in_threadpool(repo.tag_exists, params.tag_id):
            raise ValidationException("Invalid tag id", path=["tagId"])

    query = ImageQuery(
        user_id=principal.id,
        title=params.title,
        tag_id=params.tag_id,
        sort_by=params.sort_by,
        order=params.order,
    )

    total_images = await run_in_threadpool(repo.count_images, query)
    if total_images == 0:
        return ListImagesResponse(
            current_page=1,
            total_pages=0,
            page_size=params.page_size,
            total_images=0,
            images=[],
        )

    total_pages = math.ceil(total_images / params.page_size)
    if params.page > total_pages:
        raise PageOutOfRangeException(params.page, total_pages)

    rows = await run_in_threadpool(repo.fetch_images, query, params.page, params.page_size)
    rows = await attach_urls(s3, principal.username, rows)

    return ListImagesResponse(
        current_page=params.page,
        total_pages=total_pages,
        page_size=params.page_size,
        total_images=total_images,
        images=[ListedImage.model_validate(row) for row in rows],
    )
