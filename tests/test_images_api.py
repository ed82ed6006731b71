"""Tests for GET /api/images and GET /api/images/{image_id}."""

from sqlalchemy.orm import Session

from conftest import make_image, make_user, principal_for
from galleria.metadata import Image


class TestListImages:
    def test_anonymous_listing_is_public_only(self, api, test_db: Session):
        owner = make_user(test_db, "lena")
        make_image(test_db, owner, privacy="public")
        make_image(test_db, owner, privacy="unlisted")
        make_image(test_db, owner, privacy="private")

        response = api.client.get("/api/images")
        assert response.status_code == 200
        body = response.json()
        assert [image["privacy"] for image in body["images"]] == ["public"]
        assert body["pagination"]["total"] == 1
        assert body["pagination"]["total_pages"] == 1

    def test_limit_is_capped_at_fifty(self, api, test_db: Session):
        response = api.client.get("/api/images", params={"limit": "500"})
        assert response.status_code == 200
        assert response.json()["pagination"]["limit"] == 50

    def test_owner_lists_own_private_images(self, api, test_db: Session):
        owner = make_user(test_db, "lena")
        make_image(test_db, owner, privacy="private")
        api.principal = principal_for(owner)

        response = api.client.get("/api/images", params={"user_id": str(owner.supabase_uid)})
        assert [image["privacy"] for image in response.json()["images"]] == ["private"]

    def test_invalid_privacy_is_rejected(self, api):
        response = api.client.get("/api/images", params={"privacy": "hidden"})
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        assert body["allowed"] == ["public", "unlisted", "private"]


class TestGetImage:
    def test_missing_image_is_404(self, api):
        response = api.client.get("/api/images/12345")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_private_image_forbidden_for_other_user(self, api, test_db: Session):
        owner = make_user(test_db, "mia")
        stranger = make_user(test_db, "ned")
        image = make_image(test_db, owner, privacy="private")
        api.principal = principal_for(stranger)

        response = api.client.get(f"/api/images/{image.id}")
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "forbidden"
        assert body["required"] == "view_private_images"

    def test_owner_fetches_private_image_without_counting_view(self, api, test_db: Session):
        owner = make_user(test_db, "mia", role="editor")
        image = make_image(test_db, owner, privacy="private", title="mine")
        api.principal = principal_for(owner)

        response = api.client.get(f"/api/images/{image.id}")
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "mine"
        assert body["views"] == 0
        assert body["permissions"] == {"can_modify": True, "can_delete": True}

    def test_non_owner_view_is_counted(self, api, test_db: Session):
        owner = make_user(test_db, "mia")
        image = make_image(test_db, owner, privacy="public")
        image_id = image.id

        first = api.client.get(f"/api/images/{image_id}")
        second = api.client.get(f"/api/images/{image_id}")
        assert first.json()["views"] == 1
        assert second.json()["views"] == 2
        assert second.json()["permissions"] == {"can_modify": False, "can_delete": False}

        test_db.expire_all()
        assert test_db.get(Image, image_id).views == 2

    def test_unlisted_visible_to_editor(self, api, test_db: Session):
        owner = make_user(test_db, "mia")
        editor = make_user(test_db, "oli", role="editor")
        image = make_image(test_db, owner, privacy="unlisted")

        assert api.client.get(f"/api/images/{image.id}").status_code == 403
        api.principal = principal_for(editor)
        assert api.client.get(f"/api/images/{image.id}").status_code == 200
