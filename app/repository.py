from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Iterable, List, Optional, Set, TypeVar
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.db.models import Image, ImageTag, Tag, User
from app.exceptions import DatabaseException
from app.image_service.query_builder import ImageQuery

log = logging.getLogger(__name__)

T = TypeVar("T")


class WriteStatus(str, Enum):
    OK = "ok"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass
class WriteResult(Generic[T]):
    """Outcome of a write; callers branch on ``status``."""
    status: WriteStatus
    value: Optional[T] = None
    detail: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is WriteStatus.OK


class MetadataRepository:
    """Relational persistence for users, tags, images and their associations."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------
    # Writes
    # -------------------------
    def _commit(self, label: str, *rows) -> WriteResult:
        try:
            self.db.add_all(rows)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            log.info("%s rejected by constraint: %s", label, e.orig)
            return WriteResult(WriteStatus.CONFLICT, detail=str(e.orig))
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error(f"{label} failed: {e}")
            return WriteResult(WriteStatus.FAILED, detail=str(e))
        for row in rows:
            self.db.refresh(row)
        return WriteResult(WriteStatus.OK, value=list(rows))

    def create_user(self, username: str, password_hash: str) -> WriteResult[User]:
        result = self._commit("Insert user", User(username=username, password=password_hash))
        if result.ok:
            result.value = result.value[0]
        return result

    def create_tag(self, tag_name: str) -> WriteResult[Tag]:
        result = self._commit("Insert tag", Tag(tag_name=tag_name))
        if result.ok:
            result.value = result.value[0]
        return result

    def insert_image(self, **fields: Any) -> WriteResult[Image]:
        result = self._commit("Insert image", Image(**fields))
        if result.ok:
            result.value = result.value[0]
            log.info("Saved image metadata %s", result.value.id)
        return result

    def insert_image_tags(self, image_id: int, tag_ids: Iterable[int]) -> WriteResult[List[ImageTag]]:
        rows = [ImageTag(image_id=image_id, tag_id=tag_id) for tag_id in tag_ids]
        if not rows:
            return WriteResult(WriteStatus.OK, value=[])
        return self._commit("Insert image tags", *rows)

    # -------------------------
    # Reads
    # -------------------------
    def _read(self, label: str, fn):
        try:
            return fn()
        except SQLAlchemyError as e:
            log.error(f"{label} failed: {e}")
            raise DatabaseException(f"Failed to {label.lower()}: {e}")

    def get_user(self, user_id: int) -> Optional[User]:
        return self._read("Get user", lambda: self.db.get(User, user_id))

    def get_user_by_username(self, username: str) -> Optional[User]:
        stmt = select(User).where(User.username == username)
        return self._read("Get user", lambda: self.db.scalars(stmt).first())

    def get_tags_by_ids(self, tag_ids: Set[int]) -> List[Tag]:
        stmt = select(Tag).where(Tag.id.in_(sorted(tag_ids))).order_by(Tag.id)
        return self._read("Resolve tags", lambda: list(self.db.scalars(stmt)))

    def tag_exists(self, tag_id: int) -> bool:
        stmt = select(Tag.id).where(Tag.id == tag_id)
        return self._read("Look up tag", lambda: self.db.scalar(stmt) is not None)

    def search_tags(self, name: str, page: int, page_size: int) -> List[Tag]:
        stmt = (
            select(Tag)
            .where(Tag.tag_name.icontains(name, autoescape=True))
            .order_by(Tag.id)
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
        return self._read("Search tags", lambda: list(self.db.scalars(stmt)))

    def count_images(self, query: ImageQuery) -> int:
        return self._read("Count images", lambda: int(self.db.scalar(query.count_statement()) or 0))

    def fetch_images(self, query: ImageQuery, page: int, page_size: int) -> List[Dict[str, Any]]:
        rows = self._read(
            "Fetch images",
            lambda: self.db.execute(query.page_statement(page, page_size)).mappings().all(),
        )
        images = []
        for row in rows:
            item = dict(row)
            # Outer joins give untagged images a single all-null tag entry
            item["all_tags"] = [t for t in (item.get("all_tags") or []) if t.get("id") is not None]
            images.append(item)
        return images

    def image_keys_exist(self, keys: Iterable[str]) -> Set[str]:
        keys = list(keys)
        if not keys:
            return set()
        stmt = select(Image.key).where(Image.key.in_(keys))
        return self._read("Look up image keys", lambda: set(self.db.scalars(stmt)))

    def count_image_tags(self, image_id: int) -> int:
        stmt = select(func.count()).select_from(ImageTag).where(ImageTag.image_id == image_id)
        return self._read("Count image tags", lambda: int(self.db.scalar(stmt) or 0))
