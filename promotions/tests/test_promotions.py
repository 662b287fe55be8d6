"""
Unit Tests for Promotions

Tests cover:
1. Creation rules: required fields, date parsing, date order
2. The public active window
3. Partial updates and deletion
4. Admin-only HTTP routes
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from core.errors import NotFoundError, ValidationError
from promotions.models import CreatePromotionRequest, CtaType, UpdatePromotionRequest

ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}


def _request(start, end, **overrides):
    fields = {
        "title": "  Holi sale  ",
        "description": "Colours and sweets",
        "start_date": start.isoformat(),
        "end_date": end.isoformat(),
    }
    fields.update(overrides)
    return CreatePromotionRequest(**fields)


class TestCreatePromotion:
    """Tests for creating promotions."""

    def test_create_trims_and_stores(self, promotions, clock):
        """Test that a valid promotion is stored with trimmed fields."""
        now = clock()

        promotion = promotions.create_promotion(
            _request(now, now + timedelta(days=3), cta_type="WhatsApp", cta_value=" 9123456780 ")
        )

        assert promotion.title == "Holi sale"
        assert promotion.cta_type == CtaType.WHATSAPP
        assert promotion.cta_value == "9123456780"
        assert promotions.list_all_promotions() == [promotion]

    @pytest.mark.parametrize("field,message", [
        ("title", "Title is required"),
        ("start_date", "Start date is required"),
        ("end_date", "End date is required"),
    ])
    def test_required_fields(self, promotions, clock, field, message):
        """Test that title and both dates are required."""
        now = clock()
        with pytest.raises(ValidationError, match=message):
            promotions.create_promotion(_request(now, now, **{field: " "}))

    def test_invalid_date(self, promotions, clock):
        """Test that an unparseable date is rejected."""
        with pytest.raises(ValidationError, match="Invalid date format"):
            promotions.create_promotion(_request(clock(), clock(), end_date="next tuesday"))

    def test_end_before_start(self, promotions, clock):
        """Test that the window cannot run backwards."""
        now = clock()
        with pytest.raises(ValidationError, match="End date must be after start date"):
            promotions.create_promotion(_request(now, now - timedelta(days=1)))

    def test_unknown_cta_type_dropped(self, promotions, clock):
        """Test that an unsupported call to action is stored as none."""
        now = clock()
        promotion = promotions.create_promotion(_request(now, now, cta_type="email"))
        assert promotion.cta_type is None


class TestActiveWindow:
    """Tests for the public promotion list."""

    def test_only_started_and_unexpired(self, promotions, clock):
        """Test that future and expired promotions are hidden."""
        now = clock()
        live = promotions.create_promotion(_request(now - timedelta(days=2), now + timedelta(days=2), title="Live"))
        promotions.create_promotion(_request(now + timedelta(days=1), now + timedelta(days=5), title="Future"))
        promotions.create_promotion(_request(now - timedelta(days=9), now - timedelta(days=2), title="Expired"))

        assert [p.id for p in promotions.list_active_promotions()] == [live.id]
        assert len(promotions.list_all_promotions()) == 3

    def test_ending_earlier_today_is_still_live(self, promotions, clock):
        """Test that a promotion stays listed for the whole of its end day."""
        now = clock()
        promotion = promotions.create_promotion(_request(now - timedelta(days=1), now - timedelta(hours=2)))

        assert [p.id for p in promotions.list_active_promotions()] == [promotion.id]

        clock.advance(days=1)
        assert promotions.list_active_promotions() == []

    def test_newest_start_first(self, promotions, clock):
        """Test ordering by start date, latest first."""
        now = clock()
        older = promotions.create_promotion(_request(now - timedelta(days=5), now + timedelta(days=1)))
        newer = promotions.create_promotion(_request(now - timedelta(days=1), now + timedelta(days=1)))

        assert [p.id for p in promotions.list_active_promotions()] == [newer.id, older.id]


class TestUpdateAndDelete:
    """Tests for admin edits."""

    def test_partial_update(self, promotions, clock):
        """Test that only the fields sent are changed."""
        now = clock()
        promotion = promotions.create_promotion(
            _request(now, now + timedelta(days=1), image_url="https://cdn.example/holi.png", cta_label="Call")
        )
        clock.advance(minutes=5)

        updated = promotions.update_promotion(
            promotion.id, UpdatePromotionRequest(title=" ", description=" ", cta_label="Chat")
        )

        assert updated.title == "Holi sale"
        assert updated.description == ""
        assert updated.cta_label == "Chat"
        assert updated.image_url == "https://cdn.example/holi.png"
        assert updated.updated_at == clock()

    def test_remove_image(self, promotions, clock):
        """Test that remove_image clears the image."""
        now = clock()
        promotion = promotions.create_promotion(_request(now, now, image_url="https://cdn.example/a.png"))

        updated = promotions.update_promotion(promotion.id, UpdatePromotionRequest(remove_image=True))

        assert updated.image_url is None

    def test_update_cannot_invert_window(self, promotions, clock):
        """Test that a new end date before the start is rejected and nothing is saved."""
        now = clock()
        promotion = promotions.create_promotion(_request(now, now + timedelta(days=2)))

        with pytest.raises(ValidationError):
            promotions.update_promotion(
                promotion.id, UpdatePromotionRequest(end_date=(now - timedelta(days=1)).isoformat())
            )

        assert promotions.list_all_promotions()[0].end_date == now + timedelta(days=2)

    def test_delete(self, promotions, clock):
        """Test that a deleted promotion is gone and a second delete is not found."""
        now = clock()
        promotion = promotions.create_promotion(_request(now, now))

        promotions.delete_promotion(promotion.id)

        assert promotions.list_all_promotions() == []
        with pytest.raises(NotFoundError):
            promotions.delete_promotion(promotion.id)

    def test_update_unknown(self, promotions):
        """Test updating a missing promotion."""
        with pytest.raises(NotFoundError, match="Promotion not found"):
            promotions.update_promotion(uuid4(), UpdatePromotionRequest(title="x"))


class TestPromotionsApi:
    """Tests for /api/promotions."""

    def test_admin_create_then_public_list(self, client, clock):
        """Test the create route and the public list."""
        now = clock()
        body = {
            "title": "Holi sale",
            "start_date": (now - timedelta(days=1)).isoformat(),
            "end_date": (now + timedelta(days=1)).isoformat(),
        }

        assert client.post("/api/promotions", json=body).status_code == 403
        created = client.post("/api/promotions", json=body, headers=ADMIN_HEADERS)

        assert created.status_code == 201
        listed = client.get("/api/promotions").json()
        assert [p["id"] for p in listed] == [created.json()["id"]]

    def test_admin_delete(self, client, clock):
        """Test the delete route."""
        now = clock()
        created = client.post("/api/promotions", headers=ADMIN_HEADERS, json={
            "title": "Holi sale",
            "start_date": now.isoformat(),
            "end_date": now.isoformat(),
        }).json()

        response = client.delete(f"/api/promotions/{created['id']}", headers=ADMIN_HEADERS)

        assert response.status_code == 200
        assert response.json()["message"] == "Promotion deleted"
        assert client.get("/api/promotions/all", headers=ADMIN_HEADERS).json() == []
