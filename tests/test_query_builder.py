import pytest
from sqlalchemy.dialects import postgresql, sqlite

from app.exceptions import ValidationException
from app.image_service.query_builder import ImageQuery


def compile_pg(stmt):
    return stmt.compile(dialect=postgresql.dialect())


def test_page_statement_aggregates_and_filters_by_tag_on_postgresql():
    compiled = compile_pg(ImageQuery(user_id=1, tag_id=4).page_statement(page=1, page_size=8))
    sql = str(compiled)
    assert "json_agg(json_build_object('id', tag.id, 'tagName', tag.tag_name))" in sql
    assert "GROUP BY image.id" in sql
    assert "HAVING array_agg(tag.id) @> ARRAY[" in sql
    assert "::integer[]" in sql
    assert "LEFT OUTER JOIN image_tags" in sql
    assert 4 in compiled.params.values()


def test_page_statement_on_sqlite_uses_json_group_array():
    sql = str(ImageQuery(user_id=1, tag_id=4).page_statement(1, 8).compile(dialect=sqlite.dialect()))
    assert "json_group_array(json_object('id', tag.id, 'tagName', tag.tag_name))" in sql
    assert "HAVING sum(CASE WHEN tag.id = ?" in sql


def test_count_statement_shares_filters_without_grouping():
    query = ImageQuery(user_id=1, title="sun", tag_id=4)
    compiled = compile_pg(query.count_statement())
    sql = str(compiled)
    assert "count(*)" in sql
    assert "GROUP BY" not in sql
    assert "image.user_id = %(user_id_1)s" in sql
    assert "image.id IN (SELECT image_tags.image_id" in sql
    assert "image.title" in sql and "LIKE" in sql.upper()
    assert "sun" not in sql
    assert any("sun" in str(v) for v in compiled.params.values())
    assert 4 in compiled.params.values()


def test_title_is_bound_not_interpolated():
    hostile = "x'; DROP TABLE image; --"
    query = ImageQuery(user_id=1, title=hostile)
    for stmt in (query.count_statement(), query.page_statement(1, 8)):
        compiled = compile_pg(stmt)
        assert "DROP TABLE" not in str(compiled)
        assert any("DROP TABLE" in str(v) for v in compiled.params.values())


def test_no_tag_filter_means_no_having():
    sql = str(compile_pg(ImageQuery(user_id=1).page_statement(1, 8)))
    assert "HAVING" not in sql


def test_default_sort_is_upload_date_desc():
    sql = str(compile_pg(ImageQuery(user_id=1).page_statement(1, 8)))
    assert "ORDER BY image.upload_at DESC, image.id DESC" in sql


def test_title_sort_ascending():
    sql = str(compile_pg(ImageQuery(user_id=1, sort_by="title", order="asc").page_statement(1, 8)))
    assert "ORDER BY image.title ASC, image.id ASC" in sql


def test_pagination_offset():
    compiled = compile_pg(ImageQuery(user_id=1).page_statement(page=3, page_size=5))
    assert compiled.params["param_1"] == 5
    assert compiled.params["param_2"] == 10


@pytest.mark.parametrize("sort_by, order", [("size", "asc"), ("title", "sideways"), ("upload_at; --", "desc")])
def test_unknown_sort_is_rejected(sort_by, order):
    with pytest.raises(ValidationException):
        ImageQuery(user_id=1, sort_by=sort_by, order=order)
