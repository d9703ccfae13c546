from app.image_service.query_builder import ImageQuery
from app.repository import WriteStatus


def add_image(repo, user, key, title=None, tag_ids=()):
    result = repo.insert_image(
        title=title, key=key, mime_type="image/jpeg",
        width=10, height=10, file_size=100, user_id=user.id,
    )
    assert result.ok
    assert repo.insert_image_tags(result.value.id, list(tag_ids)).ok
    return result.value


def test_create_tag_conflict_is_reported(repo):
    assert repo.create_tag("travel").status is WriteStatus.OK
    second = repo.create_tag("travel")
    assert second.status is WriteStatus.CONFLICT
    assert second.value is None
    # The session is usable after the rollback
    assert repo.create_tag("food").ok


def test_create_user_conflict_is_reported(repo):
    assert repo.create_user("alice", "hash").ok
    assert repo.create_user("alice", "hash").status is WriteStatus.CONFLICT


def test_duplicate_image_key_conflicts(repo, make_user):
    user = make_user()
    add_image(repo, user, "same.jpg")
    result = repo.insert_image(
        title=None, key="same.jpg", mime_type="image/jpeg",
        width=1, height=1, file_size=1, user_id=user.id,
    )
    assert result.status is WriteStatus.CONFLICT


def test_image_gets_upload_timestamp(repo, make_user):
    image = add_image(repo, make_user(), "ts.jpg")
    assert image.upload_at is not None
    assert image.upload_at.microsecond % 1000 == 0


def test_get_tags_by_ids_ignores_unknown(repo, make_tags):
    a, b = make_tags("alpha", "bravo")
    assert [t.id for t in repo.get_tags_by_ids({a.id, 999})] == [a.id]


def test_count_matches_rows_for_tag_filter(repo, make_user, make_tags):
    user = make_user()
    a, b = make_tags("alpha", "bravo")
    add_image(repo, user, "1.jpg", "one", [a.id, b.id])
    add_image(repo, user, "2.jpg", "two", [a.id])
    add_image(repo, user, "3.jpg", "three", [b.id])
    add_image(repo, user, "4.jpg", "four")

    for tag_id in (None, a.id, b.id):
        query = ImageQuery(user_id=user.id, tag_id=tag_id)
        rows = repo.fetch_images(query, page=1, page_size=50)
        assert repo.count_images(query) == len(rows)
        assert len({row["id"] for row in rows}) == len(rows)

    rows = repo.fetch_images(ImageQuery(user_id=user.id, tag_id=a.id), page=1, page_size=50)
    tags_by_title = {row["title"]: sorted(t["tagName"] for t in row["all_tags"]) for row in rows}
    assert tags_by_title == {"one": ["alpha", "bravo"], "two": ["alpha"]}


def test_count_images_applies_title_filter(repo, make_user):
    user = make_user()
    add_image(repo, user, "1.jpg", "Sunset over sea")
    add_image(repo, user, "2.jpg", "Dawn")
    assert repo.count_images(ImageQuery(user_id=user.id, title="sunset")) == 1


def test_image_keys_exist(repo, make_user):
    add_image(repo, make_user(), "known.jpg")
    assert repo.image_keys_exist(["known.jpg", "unknown.jpg"]) == {"known.jpg"}
    assert repo.image_keys_exist([]) == set()
