"""Finds stored objects that never got an image row.

An upload writes the object before the metadata row, so a failed insert
leaves the object behind. This sweep lists everything under the upload
prefix and reports (or deletes) keys with no matching row once they are
older than the grace period, which keeps in-flight uploads out of reach.

Usage:
    python -m app.image_service.reconcile [--delete]
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional
import argparse
import logging

from botocore.exceptions import BotoCoreError, ClientError

from app.exceptions import S3UploadException
from app.repository import MetadataRepository
from app.settings import settings
from app.storage.s3 import S3Service

log = logging.getLogger(__name__)

BATCH_SIZE = 500


def find_orphaned_keys(
    repo: MetadataRepository,
    s3: S3Service,
    older_than: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> List[str]:
    """Object keys under the upload prefix that no image row references."""
    grace = older_than if older_than is not None else timedelta(seconds=settings.orphan_grace_seconds)
    cutoff = (now or datetime.now(timezone.utc)) - grace
    prefix = f"{settings.upload_key_prefix}/"

    candidates = {}
    try:
        for obj in s3.list_objects(prefix):
            if obj["LastModified"] > cutoff:
                continue
            # image-uploads/{username}/{key}
            image_key = obj["Key"].rsplit("/", 1)[-1]
            candidates.setdefault(image_key, []).append(obj["Key"])
    except (BotoCoreError, ClientError) as e:
        log.error(f"Listing {prefix} failed: {e}")
        raise S3UploadException(f"Failed to list stored images: {e}")

    orphans = []
    image_keys = sorted(candidates)
    for start in range(0, len(image_keys), BATCH_SIZE):
        batch = image_keys[start:start + BATCH_SIZE]
        known = repo.image_keys_exist(batch)
        for image_key in batch:
            if image_key not in known:
                orphans.extend(candidates[image_key])
    return sorted(orphans)


def reconcile_orphans(
    repo: MetadataRepository,
    s3: S3Service,
    delete: bool = False,
    older_than: Optional[timedelta] = None,
) -> List[str]:
    """Reports orphaned objects and removes them when ``delete`` is set."""
    orphans = find_orphaned_keys(repo, s3, older_than=older_than)
    for key in orphans:
        if delete:
            try:
                s3.delete(key)
            except (BotoCoreError, ClientError) as e:
                log.error(f"Failed to delete orphan {key}: {e}")
                raise S3UploadException(f"Failed to delete orphaned object: {e}")
            log.info("Deleted orphaned object %s", key)
        else:
            log.warning("Orphaned object %s", key)
    log.info("Found %d orphaned objects", len(orphans))
    return orphans


def main(argv=None):
    from app.db.database import SessionLocal

    parser = argparse.ArgumentParser(description="Report or delete objects with no image row.")
    parser.add_argument("--delete", action="store_true", help="delete the orphaned objects")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    db = SessionLocal()
    s3 = S3Service()
    try:
        reconcile_orphans(MetadataRepository(db), s3, delete=args.delete)
    finally:
        db.close()
        s3.close()


if __name__ == "__main__":
    main()
