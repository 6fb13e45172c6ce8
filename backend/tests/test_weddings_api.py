"""
Test suite for wedding management endpoints
Tests: create, slug rules, publish lifecycle, partial update, ownership, listing, public pages, cascade delete
"""
import asyncio

import pytest

from services import weddings as weddings_module
from services.rsvps import list_rsvps
from services.guests import list_guests

API = "/api/v1"


def create_wedding(client, headers, payload):
    response = client.post(f"{API}/weddings", json=payload, headers=headers)
    assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.text}"
    return response.json()


class TestCreateAndPublish:
    """Create a draft and publish it"""

    def test_create_and_publish(self, client, owner_headers, wedding_payload):
        """Test the create -> publish flow"""
        wedding = create_wedding(client, owner_headers, wedding_payload)
        assert wedding["status"] == "draft", "New weddings start as drafts"
        assert wedding["slug"] == "j-and-j-2026"
        assert wedding["user_id"] == "user-owner-1"
        assert wedding["couple"]["partner1"]["first_name"] == "Jay", "first shorthand should map to first_name"
        assert wedding["published_at"] is None
        assert wedding["rsvp_count"] == 0 and wedding["guest_count"] == 0 and wedding["total_attending"] == 0

        response = client.post(f"{API}/weddings/{wedding['id']}/publish", headers=owner_headers)
        assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.text}"
        published = response.json()
        assert published["status"] == "published"
        assert published["published_at"], "published_at should be set"
        print(f"✓ Created and published wedding {published['slug']}")

    def test_publish_is_idempotent(self, client, owner_headers, published_wedding):
        """Test publishing twice keeps the first published_at"""
        response = client.post(f"{API}/weddings/{published_wedding['id']}/publish", headers=owner_headers)
        assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.text}"
        assert response.json()["published_at"] == published_wedding["published_at"]
        print("✓ Second publish left published_at unchanged")

    def test_publish_requires_couple_and_event(self, client, owner_headers):
        """Test publishing an incomplete draft names the missing field"""
        wedding = create_wedding(client, owner_headers, {"title": "Incomplete", "slug": "incomplete-one"})
        response = client.post(f"{API}/weddings/{wedding['id']}/publish", headers=owner_headers)
        assert response.status_code == 400, f"Expected 400, got {response.status_code}: {response.text}"
        body = response.json()
        assert body["code"] == "VALIDATION"
        assert body["field"] == "couple.partner1.first_name"
        print("✓ Incomplete draft cannot be published")

    def test_round_trip(self, client, owner_headers, wedding_payload):
        """Test create then read yields the same wedding"""
        wedding_payload["theme"] = {"primary_color": "#aabbcc", "custom_settings": {"layout": "split"}}
        wedding_payload["couple"]["story"] = "Met at a bus stop"
        created = create_wedding(client, owner_headers, wedding_payload)

        response = client.get(f"{API}/weddings/{created['id']}", headers=owner_headers)
        assert response.status_code == 200
        assert response.json() == created
        assert created["theme"]["custom_settings"] == {"layout": "split"}
        assert created["theme"]["theme_id"] == "default"
        print("✓ Read returns the created wedding")


class TestSlugRules:
    """Slug validation and uniqueness"""

    def test_duplicate_slug(self, client, owner_headers, other_headers, wedding_payload):
        """Test a second wedding with the same slug is rejected"""
        create_wedding(client, owner_headers, wedding_payload)
        response = client.post(f"{API}/weddings", json=wedding_payload, headers=other_headers)
        assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.text}"
        body = response.json()
        assert body["code"] == "SLUG_TAKEN"
        assert "error" in body
        print("✓ Duplicate slug rejected with SLUG_TAKEN")

    @pytest.mark.parametrize("slug", ["admin", "ab", "Bad Slug!", "double--dash", "-edge"])
    def test_invalid_slugs(self, client, owner_headers, slug):
        """Test reserved, short and malformed slugs are rejected"""
        response = client.post(f"{API}/weddings", json={"title": "Test", "slug": slug}, headers=owner_headers)
        assert response.status_code == 400, f"Expected 400 for {slug!r}, got {response.status_code}"
        assert response.json()["field"] == "slug"

    def test_slug_is_lowercased(self, client, owner_headers):
        wedding = create_wedding(client, owner_headers, {"title": "Case", "slug": "Sam-And-Alex"})
        assert wedding["slug"] == "sam-and-alex"

    def test_slug_generated_from_title(self, client, owner_headers):
        """Test weddings without a slug get one derived from the title"""
        first = create_wedding(client, owner_headers, {"title": "Sam & Alex"})
        second = create_wedding(client, owner_headers, {"title": "Sam & Alex"})
        assert first["slug"] == "sam-alex"
        assert second["slug"].startswith("sam-alex-") and second["slug"] != first["slug"]
        print(f"✓ Generated slugs {first['slug']} and {second['slug']}")

    def test_update_to_taken_slug(self, client, owner_headers, wedding_payload):
        create_wedding(client, owner_headers, wedding_payload)
        other = create_wedding(client, owner_headers, {"title": "Other", "slug": "other-wedding"})
        response = client.put(f"{API}/weddings/{other['id']}", json={"slug": "j-and-j-2026"}, headers=owner_headers)
        assert response.status_code == 409
        assert response.json()["code"] == "SLUG_TAKEN"

    def test_unique_index_catches_slug_race(self, client, monkeypatch, owner_headers, other_headers, wedding_payload):
        """Test a slug that slips past the availability lookup is still rejected on insert and update"""
        async def never_in_use(*args, **kwargs):
            return False

        create_wedding(client, owner_headers, wedding_payload)
        other = create_wedding(client, owner_headers, {"title": "Other", "slug": "other-wedding"})
        monkeypatch.setattr(weddings_module, "_slug_in_use", never_in_use)

        response = client.post(f"{API}/weddings", json=wedding_payload, headers=other_headers)
        assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.text}"
        assert response.json()["code"] == "SLUG_TAKEN"
        assert response.json()["field"] == "slug"

        response = client.put(f"{API}/weddings/{other['id']}", json={"slug": "j-and-j-2026"}, headers=owner_headers)
        assert response.status_code == 409, f"Expected 409, got {response.status_code}: {response.text}"
        assert response.json()["code"] == "SLUG_TAKEN"

        response = client.get(f"{API}/weddings/{other['id']}", headers=owner_headers)
        assert response.json()["slug"] == "other-wedding", "A rejected update must not change the slug"
        print("✓ Unique slug index enforced behind the lookup")


class TestUpdate:
    """Partial updates"""

    def test_nested_fields_are_merged(self, client, owner_headers, wedding_payload):
        """Test updating one event field keeps the others"""
        wedding = create_wedding(client, owner_headers, wedding_payload)
        response = client.put(
            f"{API}/weddings/{wedding['id']}",
            json={"event": {"venue_name": "Garden"}, "rsvp": {"deadline": "2026-06-01"}},
            headers=owner_headers,
        )
        assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.text}"
        updated = response.json()
        assert updated["event"]["venue_name"] == "Garden"
        assert updated["event"]["title"] == "Ceremony", "Untouched event fields must be kept"
        assert updated["rsvp"]["deadline"] == "2026-06-01"
        assert updated["rsvp"]["max_plus_ones"] == 2
        assert updated["updated_at"] > wedding["updated_at"], "updated_at must increase"
        print("✓ Nested update merged")

    def test_updated_at_strictly_increases(self, client, owner_headers, wedding_payload):
        wedding = create_wedding(client, owner_headers, wedding_payload)
        stamps = [wedding["updated_at"]]
        for title in ("One", "Two", "Three"):
            response = client.put(f"{API}/weddings/{wedding['id']}", json={"title": title}, headers=owner_headers)
            stamps.append(response.json()["updated_at"])
        assert stamps == sorted(stamps) and len(set(stamps)) == len(stamps)

    def test_custom_questions_get_ids(self, client, owner_headers, wedding_payload):
        wedding = create_wedding(client, owner_headers, wedding_payload)
        response = client.put(
            f"{API}/weddings/{wedding['id']}",
            json={"rsvp": {"custom_questions": [{"question": "Song request?"}]}},
            headers=owner_headers,
        )
        assert response.status_code == 200
        questions = response.json()["rsvp"]["custom_questions"]
        assert len(questions) == 1 and questions[0]["id"]
        assert questions[0]["type"] == "text"

    def test_select_question_needs_options(self, client, owner_headers, wedding_payload):
        wedding = create_wedding(client, owner_headers, wedding_payload)
        response = client.put(
            f"{API}/weddings/{wedding['id']}",
            json={"rsvp": {"custom_questions": [{"question": "Meal", "type": "select"}]}},
            headers=owner_headers,
        )
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"

    def test_cannot_publish_through_update(self, client, owner_headers, wedding_payload):
        wedding = create_wedding(client, owner_headers, wedding_payload)
        response = client.put(f"{API}/weddings/{wedding['id']}", json={"status": "published"}, headers=owner_headers)
        assert response.status_code == 400
        assert response.json()["field"] == "status"

    def test_archive(self, client, owner_headers, published_wedding):
        response = client.put(
            f"{API}/weddings/{published_wedding['id']}", json={"status": "archived"}, headers=owner_headers
        )
        assert response.status_code == 200
        assert response.json()["status"] == "archived"


class TestOwnership:
    """Authentication and ownership checks"""

    def test_requires_token(self, client):
        response = client.get(f"{API}/weddings")
        assert response.status_code == 401
        assert response.json()["code"] == "AUTHENTICATION"

    def test_rejects_bad_token(self, client):
        response = client.get(f"{API}/weddings", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_other_user_cannot_read(self, client, owner_headers, other_headers, wedding_payload):
        wedding = create_wedding(client, owner_headers, wedding_payload)
        for method in ("get", "delete"):
            response = getattr(client, method)(f"{API}/weddings/{wedding['id']}", headers=other_headers)
            assert response.status_code == 403, f"{method}: expected 403, got {response.status_code}"
            assert response.json()["code"] == "UNAUTHORIZED"
        response = client.get(f"{API}/weddings/slug/{wedding['slug']}", headers=other_headers)
        assert response.status_code == 403

    def test_unknown_wedding(self, client, owner_headers):
        response = client.get(f"{API}/weddings/does-not-exist", headers=owner_headers)
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_owner_reads_draft_by_slug(self, client, owner_headers, wedding_payload):
        wedding = create_wedding(client, owner_headers, wedding_payload)
        response = client.get(f"{API}/weddings/slug/J-AND-J-2026", headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["id"] == wedding["id"]


class TestListing:
    """Owner and public listings"""

    def test_list_own_newest_first(self, client, owner_headers, other_headers, wedding_payload):
        first = create_wedding(client, owner_headers, wedding_payload)
        second = create_wedding(client, owner_headers, {"title": "Second", "slug": "second-one"})
        create_wedding(client, other_headers, {"title": "Not mine", "slug": "not-mine"})

        response = client.get(f"{API}/weddings", headers=owner_headers)
        assert response.status_code == 200
        page = response.json()
        assert page["total"] == 2
        assert [w["id"] for w in page["data"]] == [second["id"], first["id"]]
        assert page["page"] == 1 and page["page_size"] == 20 and page["total_pages"] == 1
        print(f"✓ Listed {page['total']} weddings")

    def test_search_and_status_filter(self, client, owner_headers, published_wedding):
        create_wedding(client, owner_headers, {"title": "Another", "slug": "another-one"})

        response = client.get(f"{API}/weddings", params={"search": "JAY"}, headers=owner_headers)
        assert [w["id"] for w in response.json()["data"]] == [published_wedding["id"]]

        response = client.get(f"{API}/weddings", params={"status": "draft"}, headers=owner_headers)
        assert [w["slug"] for w in response.json()["data"]] == ["another-one"]

    def test_page_size_out_of_range_uses_default(self, client, owner_headers):
        response = client.get(f"{API}/weddings", params={"page": 0, "page_size": 500}, headers=owner_headers)
        assert response.status_code == 200
        assert response.json()["page"] == 1
        assert response.json()["page_size"] == 20

    def test_public_list_only_published(self, client, owner_headers, published_wedding):
        create_wedding(client, owner_headers, {"title": "Draft", "slug": "a-draft"})
        later = create_wedding(client, owner_headers, {
            "title": "Later", "slug": "later-one",
            "couple": {"partner1": {"first": "A"}, "partner2": {"first": "B"}},
            "event": {"title": "Party", "date": "2027-01-01", "venue_name": "V", "venue_address": "1"},
        })
        client.post(f"{API}/weddings/{later['id']}/publish", headers=owner_headers)

        response = client.get(f"{API}/public/weddings")
        assert response.status_code == 200
        data = response.json()["data"]
        assert [w["slug"] for w in data] == ["j-and-j-2026", "later-one"], "Sorted by event date ascending"
        assert all("user_id" not in w for w in data)


class TestPublicPage:
    """Public invitation page"""

    def test_draft_is_not_public(self, client, owner_headers, wedding_payload):
        create_wedding(client, owner_headers, wedding_payload)
        response = client.get(f"{API}/public/weddings/j-and-j-2026")
        assert response.status_code == 404
        assert response.json()["code"] == "WEDDING_NOT_PUBLIC"

    def test_private_wedding_is_not_public(self, client, owner_headers, published_wedding):
        client.put(f"{API}/weddings/{published_wedding['id']}", json={"is_public": False}, headers=owner_headers)
        response = client.get(f"{API}/public/weddings/{published_wedding['slug']}")
        assert response.status_code == 404

    def test_unknown_slug(self, client):
        response = client.get(f"{API}/public/weddings/no-such-wedding")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_public_read_counts_views(self, client, owner_headers, published_wedding):
        """Test each public read increments view_count"""
        for _ in range(2):
            response = client.get(f"{API}/public/weddings/{published_wedding['slug']}")
            assert response.status_code == 200
            assert "user_id" not in response.json()
            assert "view_count" not in response.json()

        wedding = client.get(f"{API}/weddings/{published_wedding['id']}", headers=owner_headers).json()
        assert wedding["view_count"] == 2
        assert wedding["last_viewed_at"]
        print("✓ Public views counted")


class TestCascadeDelete:
    """Deleting a wedding removes its guests and RSVPs"""

    def test_cascade(self, client, db, mongo, owner_headers, published_wedding):
        wedding_id = published_wedding["id"]
        rows = [{"first_name": f"Guest{i}", "last_name": "Test", "email": f"guest{i}@example.com"} for i in range(5)]
        response = client.post(f"{API}/weddings/{wedding_id}/guests/bulk", json={"guests": rows}, headers=owner_headers)
        assert response.json()["success_count"] == 5

        for i in range(3):
            response = client.post(f"{API}/public/weddings/{published_wedding['slug']}/rsvp", json={
                "first_name": f"Resp{i}", "last_name": "Test", "email": f"resp{i}@example.com", "status": "attending",
            })
            assert response.status_code == 201, f"Expected 201, got {response.status_code}: {response.text}"

        wedding = client.get(f"{API}/weddings/{wedding_id}", headers=owner_headers).json()
        assert wedding["guest_count"] == 5 and wedding["rsvp_count"] == 3

        response = client.delete(f"{API}/weddings/{wedding_id}", headers=owner_headers)
        assert response.status_code == 200, f"Expected 200, got {response.status_code}: {response.text}"
        assert response.json()["rsvps_deleted"] == 3
        assert response.json()["guests_deleted"] == 5

        assert asyncio.run(list_rsvps(db, wedding_id))["data"] == []
        assert asyncio.run(list_guests(db, wedding_id))["data"] == []
        assert mongo.weddings.count_documents({"id": wedding_id}) == 0

        response = client.get(f"{API}/weddings/{wedding_id}", headers=owner_headers)
        assert response.status_code == 404
        print("✓ Wedding, guests and RSVPs deleted")


class TestHealth:
    def test_health(self, client):
        response = client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
