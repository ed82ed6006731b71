"""Tests for structured search: filter clauses, privacy scoping, sorting and paging."""

import time
from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from conftest import make_album, make_category, make_image, make_tag, make_user, principal_for
from galleria.exceptions import UpstreamError, ValidationError
from galleria.search.filters import (
    LIST_MAX_LIMIT,
    SEARCH_MAX_LIMIT,
    EmptyResult,
    PrivacyScope,
    SearchQuery,
    build_clauses,
    clamp_limit,
    clamp_page,
    parse_date_bound,
    split_tag_names,
)
from galleria.search.query_builder import FilterQueryBuilder
from galleria.search.results import Pagination


def _ids(result) -> list:
    return [item["id"] for item in result.items]


@pytest.fixture
def gallery(test_db: Session):
    """Two owners with one image at each privacy level."""
    alice = make_user(test_db, "alice")
    bob = make_user(test_db, "bob")
    base = datetime(2024, 5, 1, 12, 0, 0)
    images = {}
    for offset, (owner, privacy) in enumerate([
        (alice, "public"),
        (alice, "unlisted"),
        (alice, "private"),
        (bob, "public"),
        (bob, "unlisted"),
        (bob, "private"),
    ]):
        key = f"{owner.username}_{privacy}"
        images[key] = make_image(
            test_db,
            owner,
            privacy=privacy,
            title=key,
            created_at=base + timedelta(hours=offset),
        )
    return {"alice": alice, "bob": bob, "images": images}


class TestParsing:
    def test_page_and_limit_clamping(self):
        assert clamp_page(None) == 1
        assert clamp_page("0") == 1
        assert clamp_page("abc") == 1
        assert clamp_page("3") == 3
        assert clamp_limit(None, maximum=SEARCH_MAX_LIMIT) == 20
        assert clamp_limit("0", maximum=SEARCH_MAX_LIMIT) == 1
        assert clamp_limit("500", maximum=SEARCH_MAX_LIMIT) == 100
        assert clamp_limit("500", maximum=LIST_MAX_LIMIT) == 50

    def test_tag_names_are_normalized_and_deduped(self):
        assert split_tag_names(" Sunset, beach ,,SUNSET ") == ("sunset", "beach")
        assert split_tag_names(None) == ()

    def test_unknown_sort_falls_back_to_created_at(self):
        query = SearchQuery.from_params(sort_by="password", sort_order="sideways")
        assert query.sort_by == "created_at"
        assert query.sort_order == "desc"

    def test_invalid_inputs_raise_validation_errors(self):
        with pytest.raises(ValidationError):
            SearchQuery.from_params(privacy="secret")
        with pytest.raises(ValidationError):
            SearchQuery.from_params(user_id="not-a-uuid")
        with pytest.raises(ValidationError):
            SearchQuery.from_params(category_id="abc")
        with pytest.raises(ValidationError):
            SearchQuery.from_params(date_from="05/01/2024")

    def test_date_to_is_inclusive_end_of_day(self):
        query = SearchQuery.from_params(date_from="2024-05-01", date_to="2024-05-02")
        assert query.date_from == datetime(2024, 5, 1, 0, 0, 0)
        assert query.date_to.date() == datetime(2024, 5, 2).date()
        assert query.date_to.hour == 23 and query.date_to.minute == 59

    @pytest.mark.skipif(not hasattr(time, "tzset"), reason="requires time.tzset")
    def test_offset_timestamps_convert_to_utc_on_any_host(self, monkeypatch):
        monkeypatch.setenv("TZ", "America/New_York")
        time.tzset()
        try:
            assert parse_date_bound("2024-01-01T12:00:00Z", field_name="date_from") == datetime(2024, 1, 1, 12, 0, 0)
            assert parse_date_bound("2024-01-01T12:00:00+02:00", field_name="date_to") == datetime(2024, 1, 1, 10, 0, 0)
        finally:
            monkeypatch.undo()
            time.tzset()

    def test_pagination_math(self):
        assert Pagination(page=1, limit=20, total=0).total_pages == 0
        assert Pagination(page=1, limit=20, total=41).total_pages == 3
        page = Pagination(page=2, limit=20, total=41)
        assert page.has_next and page.has_prev
        assert page.offset == 20


class TestPrivacyScope:
    def test_privacy_clause_is_always_first(self, test_db: Session, gallery):
        query = SearchQuery.from_params(q="alice", camera_make="Canon")
        clauses = build_clauses(test_db, query, None)
        assert isinstance(clauses[0], PrivacyScope)
        assert clauses[0].levels == frozenset({"public"})

    def test_anonymous_sees_only_public(self, test_db: Session, gallery):
        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params())
        assert {item["privacy"] for item in result.items} == {"public"}
        assert result.pagination.total == 2

    def test_user_sees_public_plus_own(self, test_db: Session, gallery):
        principal = principal_for(gallery["alice"])
        result = FilterQueryBuilder(test_db, principal).search(SearchQuery.from_params())
        titles = {item["title"] for item in result.items}
        assert titles == {"alice_public", "alice_unlisted", "alice_private", "bob_public"}

    def test_editor_also_sees_unlisted(self, test_db: Session, gallery):
        editor = principal_for(make_user(test_db, "eddie", role="editor"))
        result = FilterQueryBuilder(test_db, editor).search(SearchQuery.from_params())
        titles = {item["title"] for item in result.items}
        assert titles == {"alice_public", "alice_unlisted", "bob_public", "bob_unlisted"}

    def test_admin_sees_everything(self, test_db: Session, gallery):
        admin = principal_for(make_user(test_db, "root", role="admin"))
        result = FilterQueryBuilder(test_db, admin).search(SearchQuery.from_params())
        assert result.pagination.total == 6

    def test_privacy_filter_only_narrows(self, test_db: Session, gallery):
        anonymous = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(privacy="private"))
        assert anonymous.items == []

        alice = principal_for(gallery["alice"])
        own_private = FilterQueryBuilder(test_db, alice).search(SearchQuery.from_params(privacy="private"))
        assert [item["title"] for item in own_private.items] == ["alice_private"]

    def test_owner_filter(self, test_db: Session, gallery):
        query = SearchQuery.from_params(user_id=str(gallery["bob"].supabase_uid))
        result = FilterQueryBuilder(test_db, None).search(query)
        assert [item["title"] for item in result.items] == ["bob_public"]


class TestFilters:
    def test_text_matches_title_caption_and_tags(self, test_db: Session):
        owner = make_user(test_db, "carol")
        beach = make_tag(test_db, "Beach")
        by_title = make_image(test_db, owner, title="Golden Sunset")
        by_caption = make_image(test_db, owner, title="Evening", caption="sunset over the bay")
        by_tag = make_image(test_db, owner, title="Shore", tags=(beach,))
        make_image(test_db, owner, title="Forest")

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(q="sunset"))
        assert set(_ids(result)) == {by_title.id, by_caption.id}

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(q="beach"))
        assert _ids(result) == [by_tag.id]

    def test_text_wildcards_are_literal(self, test_db: Session):
        owner = make_user(test_db, "carol")
        literal = make_image(test_db, owner, title="100% natural")
        make_image(test_db, owner, title="100 percent")

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(q="100%"))
        assert _ids(result) == [literal.id]

    def test_tags_are_intersected(self, test_db: Session):
        owner = make_user(test_db, "dave")
        sunset = make_tag(test_db, "Sunset")
        beach = make_tag(test_db, "Beach")
        both = make_image(test_db, owner, title="both", tags=(sunset, beach))
        make_image(test_db, owner, title="sunset only", tags=(sunset,))
        make_image(test_db, owner, title="beach only", tags=(beach,))

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(tags="SUNSET, beach"))
        assert _ids(result) == [both.id]

    def test_unknown_tag_short_circuits_to_empty(self, test_db: Session):
        owner = make_user(test_db, "dave")
        sunset = make_tag(test_db, "Sunset")
        make_image(test_db, owner, tags=(sunset,))

        query = SearchQuery.from_params(tags="sunset,unicorn")
        assert isinstance(build_clauses(test_db, query, None), EmptyResult)

        result = FilterQueryBuilder(test_db, None).search(query)
        assert result.items == []
        assert result.pagination.total == 0
        assert result.pagination.total_pages == 0

    def test_category_filter(self, test_db: Session):
        owner = make_user(test_db, "erin")
        nature = make_category(test_db, "Nature")
        empty = make_category(test_db, "Empty")
        tree = make_tag(test_db, "Tree", category=nature)
        city = make_tag(test_db, "City")
        in_category = make_image(test_db, owner, tags=(tree,))
        make_image(test_db, owner, tags=(city,))

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(category_id=str(nature.id)))
        assert _ids(result) == [in_category.id]

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(category_id=str(empty.id)))
        assert result.pagination.total == 0

    def test_album_filter_respects_album_visibility(self, test_db: Session):
        owner = make_user(test_db, "fay")
        other = make_user(test_db, "gus")
        inside = make_image(test_db, owner, title="inside")
        make_image(test_db, owner, title="outside")
        public_album = make_album(test_db, owner, privacy="public", images=(inside,))
        private_album = make_album(test_db, owner, privacy="private", images=(inside,))

        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(album_id=str(public_album.id)))
        assert _ids(result) == [inside.id]

        hidden = FilterQueryBuilder(test_db, principal_for(other)).search(
            SearchQuery.from_params(album_id=str(private_album.id))
        )
        assert hidden.pagination.total == 0

        mine = FilterQueryBuilder(test_db, principal_for(owner)).search(
            SearchQuery.from_params(album_id=str(private_album.id))
        )
        assert _ids(mine) == [inside.id]

        missing = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params(album_id="999"))
        assert missing.items == []

    def test_camera_license_and_dates(self, test_db: Session):
        owner = make_user(test_db, "hal")
        canon = make_image(
            test_db, owner, camera_make="Canon", camera_model="EOS R5",
            license="CC-BY", created_at=datetime(2024, 5, 1, 9, 0),
        )
        make_image(
            test_db, owner, camera_make="Nikon", camera_model="Z6",
            license="CC0", created_at=datetime(2024, 5, 2, 23, 30),
        )
        make_image(test_db, owner, camera_make="Canon", created_at=datetime(2024, 5, 3, 8, 0))

        builder = FilterQueryBuilder(test_db, None)
        assert _ids(builder.search(SearchQuery.from_params(camera_make="canon", camera_model="r5"))) == [canon.id]
        assert _ids(builder.search(SearchQuery.from_params(license="CC-BY"))) == [canon.id]

        in_range = builder.search(SearchQuery.from_params(date_from="2024-05-01", date_to="2024-05-02"))
        assert in_range.pagination.total == 2


class TestOrderingAndPaging:
    def test_default_sort_is_newest_first(self, test_db: Session, gallery):
        result = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params())
        assert [item["title"] for item in result.items] == ["bob_public", "alice_public"]

    def test_unknown_sort_field_matches_default(self, test_db: Session, gallery):
        builder = FilterQueryBuilder(test_db, None)
        default = builder.search(SearchQuery.from_params())
        unknown = builder.search(SearchQuery.from_params(sort_by="unknown_field"))
        assert _ids(unknown) == _ids(default)

    def test_ascending_title_sort(self, test_db: Session, gallery):
        admin = principal_for(make_user(test_db, "root", role="admin"))
        result = FilterQueryBuilder(test_db, admin).search(
            SearchQuery.from_params(sort_by="title", sort_order="asc")
        )
        titles = [item["title"] for item in result.items]
        assert titles == sorted(titles)

    def test_ties_break_by_id(self, test_db: Session):
        owner = make_user(test_db, "ivy")
        stamp = datetime(2024, 1, 1)
        first = make_image(test_db, owner, created_at=stamp)
        second = make_image(test_db, owner, created_at=stamp)

        builder = FilterQueryBuilder(test_db, None)
        assert _ids(builder.search(SearchQuery.from_params())) == [second.id, first.id]
        assert _ids(builder.search(SearchQuery.from_params(sort_order="asc"))) == [first.id, second.id]

    def test_pages_never_exceed_limit(self, test_db: Session):
        owner = make_user(test_db, "jay")
        for index in range(7):
            make_image(test_db, owner, title=f"img {index}")

        builder = FilterQueryBuilder(test_db, None)
        page_one = builder.search(SearchQuery.from_params(page="1", limit="3"))
        page_three = builder.search(SearchQuery.from_params(page="3", limit="3"))
        beyond = builder.search(SearchQuery.from_params(page="9", limit="3"))

        assert len(page_one.items) == 3
        assert len(page_three.items) == 1
        assert page_one.pagination.total == 7
        assert page_one.pagination.total_pages == 3
        assert beyond.items == []
        assert beyond.pagination.total == 7

    def test_repeated_search_is_identical(self, test_db: Session, gallery):
        builder = FilterQueryBuilder(test_db, principal_for(gallery["alice"]))
        query = SearchQuery.from_params(sort_by="views")
        assert builder.search(query).items == builder.search(query).items

    def test_results_are_hydrated(self, test_db: Session):
        owner = make_user(test_db, "kim")
        category = make_category(test_db, "Subject")
        tag = make_tag(test_db, "Portrait", category=category)
        make_image(test_db, owner, tags=(tag,))

        item = FilterQueryBuilder(test_db, None).search(SearchQuery.from_params()).items[0]
        assert item["owner"]["username"] == "kim"
        assert item["tags"][0]["display_name"] == "Portrait"
        assert item["tags"][0]["category"]["name"] == "Subject"
        assert "embedding" not in item


class TestStoreFailures:
    def test_query_errors_become_retryable_upstream_errors(self, test_db: Session, gallery, monkeypatch):
        def failing_query(*args, **kwargs):
            raise OperationalError("SELECT images", {}, Exception("connection reset"))

        monkeypatch.setattr(test_db, "query", failing_query)
        with pytest.raises(UpstreamError) as exc_info:
            FilterQueryBuilder(test_db).search(SearchQuery.from_params())

        assert exc_info.value.status_code == 503
        assert exc_info.value.to_dict()["retryable"] is True
        assert isinstance(exc_info.value.__cause__, OperationalError)
