"""Query builder for the image listing.

Builds a count statement and a page statement from one set of predicates so
that the reported totals always describe the rows the page statement can
return. User input only ever reaches the SQL as bound parameters; the sort
column and direction come from fixed mappings.

The tag aggregation and the tag containment test differ between PostgreSQL
and SQLite, so they are expressed as custom constructs compiled per dialect.
"""
from typing import List, Optional

from sqlalchemy import Integer, and_, func, literal, select
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql import expression
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import JSON, Boolean

from app.db.models import Image, ImageTag, Tag
from app.exceptions import ValidationException

SORT_COLUMNS = {
    "date": Image.upload_at,
    "title": Image.title,
}
SORT_ORDERS = ("asc", "desc")


class aggregated_tags(expression.FunctionElement):
    """JSON list of ``{"id", "tagName"}`` objects for the grouped tag rows."""
    type = JSON()
    name = "aggregated_tags"
    inherit_cache = True


@compiles(aggregated_tags)
def _aggregated_tags_postgresql(element, compiler, **kw):
    tag_id, tag_name = list(element.clauses)
    return "json_agg(json_build_object('id', %s, 'tagName', %s))" % (
        compiler.process(tag_id, **kw),
        compiler.process(tag_name, **kw),
    )


@compiles(aggregated_tags, "sqlite")
def _aggregated_tags_sqlite(element, compiler, **kw):
    tag_id, tag_name = list(element.clauses)
    return "json_group_array(json_object('id', %s, 'tagName', %s))" % (
        compiler.process(tag_id, **kw),
        compiler.process(tag_name, **kw),
    )


class tag_ids_contain(expression.FunctionElement):
    """True when the grouped tag ids include the given id."""
    type = Boolean()
    name = "tag_ids_contain"
    inherit_cache = True


@compiles(tag_ids_contain)
def _tag_ids_contain_postgresql(element, compiler, **kw):
    tag_column, tag_id = list(element.clauses)
    return "array_agg(%s) @> ARRAY[%s]::integer[]" % (
        compiler.process(tag_column, **kw),
        compiler.process(tag_id, **kw),
    )


@compiles(tag_ids_contain, "sqlite")
def _tag_ids_contain_sqlite(element, compiler, **kw):
    tag_column, tag_id = list(element.clauses)
    return "sum(CASE WHEN %s = %s THEN 1 ELSE 0 END) > 0" % (
        compiler.process(tag_column, **kw),
        compiler.process(tag_id, **kw),
    )


class ImageQuery:
    """Count and page statements for one user's filtered image listing."""

    def __init__(
        self,
        user_id: int,
        title: Optional[str] = None,
        tag_id: Optional[int] = None,
        sort_by: Optional[str] = None,
        order: Optional[str] = None,
    ):
        sort_by = sort_by or "date"
        order = order or "desc"
        if sort_by not in SORT_COLUMNS:
            raise ValidationException(f"Unsupported sort key: {sort_by}", path=["sortBy"])
        if order not in SORT_ORDERS:
            raise ValidationException(f"Unsupported sort order: {order}", path=["order"])

        self.user_id = user_id
        self.title = title
        self.tag_id = tag_id
        self.sort_by = sort_by
        self.order = order

    def predicates(self) -> List[ColumnElement]:
        """Row-level filters shared by both statements."""
        clauses = [Image.user_id == self.user_id]
        if self.title:
            clauses.append(Image.title.icontains(self.title, autoescape=True))
        return clauses

    def count_statement(self):
        clauses = self.predicates()
        if self.tag_id is not None:
            tagged = select(ImageTag.image_id).where(ImageTag.tag_id == self.tag_id)
            clauses.append(Image.id.in_(tagged))
        return select(func.count()).select_from(Image).where(and_(*clauses))

    def order_clauses(self) -> tuple:
        column = SORT_COLUMNS[self.sort_by]
        if self.order == "asc":
            return (column.asc(), Image.id.asc())
        return (column.desc(), Image.id.desc())

    def page_statement(self, page: int, page_size: int):
        stmt = (
            select(
                Image.id,
                Image.title,
                Image.key,
                Image.mime_type,
                Image.width,
                Image.height,
                Image.file_size,
                Image.user_id,
                Image.upload_at,
                aggregated_tags(Tag.id, Tag.tag_name).label("all_tags"),
            )
            .select_from(Image)
            .outerjoin(ImageTag, ImageTag.image_id == Image.id)
            .outerjoin(Tag, Tag.id == ImageTag.tag_id)
            .where(and_(*self.predicates()))
            .group_by(Image.id)
        )
        if self.tag_id is not None:
            stmt = stmt.having(tag_ids_contain(Tag.id, literal(self.tag_id, Integer())))

        return (
            stmt.order_by(*self.order_clauses())
            .limit(page_size)
            .offset((page - 1) * page_size)
        )
