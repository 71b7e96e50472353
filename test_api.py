"""HTTP surface: credentials, error rendering and a few end-to-end flows."""

import httpx
import pytest
from jose import jwt

from app import config, models
from app.database import get_db
from app.main import app


def token_for(user_id, email=None):
    claims = {"sub": user_id, "aud": "authenticated", "role": "authenticated"}
    if email:
        claims["email"] = email
    return jwt.encode(claims, config.SUPABASE_JWT_SECRET, algorithm="HS256")


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(db):
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def test_health_check(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "NaOdludzie API is alive!"}


async def test_missing_and_invalid_credentials(client):
    response = await client.get("/booking-requests/host")
    assert response.status_code == 401
    assert response.json() == {"error": "No authorization header provided"}

    response = await client.get("/booking-requests/host", headers=bearer("not-a-jwt"))
    assert response.status_code == 401
    assert "Invalid or expired token" in response.json()["error"]


async def test_sweeps_need_the_service_role(client, guest):
    response = await client.post("/check-expired-bookings", headers=bearer(token_for("guest-1")))
    assert response.status_code == 403
    assert response.json() == {"error": "Service role required"}

    response = await client.post("/check-expired-bookings", headers=bearer(config.SUPABASE_SERVICE_ROLE_KEY))
    assert response.status_code == 200
    assert response.json() == {"message": "Processed 0 expired bookings", "count": 0}


async def test_anonymous_request_is_emailed_to_host(client, cabin, mailer):
    response = await client.post("/booking-requests", json={
        "cabin_id": cabin.id,
        "start_date": "2025-09-01",
        "end_date": "2025-09-04",
        "guests_count": 2,
        "guest": {"name": "Ola", "email": "ola@example.com", "phone": "+48 600 200 300"},
    })

    assert response.status_code == 201
    body = response.json()
    assert body["id"] is None
    assert body["status"] == "pending"
    [email] = mailer.to("host@example.com")
    assert "ola@example.com" in email.html


async def test_guest_request_then_host_approval(client, cabin, guest, host, mailer):
    response = await client.post("/booking-requests", headers=bearer(token_for("guest-1", "guest@example.com")), json={
        "cabin_id": cabin.id,
        "start_date": "2025-09-01",
        "end_date": "2025-09-04",
        "guests_count": 2,
    })
    assert response.status_code == 201
    request_id = response.json()["id"]

    listing = await client.get("/booking-requests/host", headers=bearer(token_for("host-1")))
    assert [r["id"] for r in listing.json()] == [request_id]
    assert listing.json()[0]["guest_name"] == "Piotr"

    response = await client.post(f"/booking-requests/{request_id}/status", headers=bearer(token_for("host-1")),
                                 json={"status": "approved", "comment": "Zapraszamy!"})
    assert response.status_code == 200
    assert response.json()["status"] == "approved"

    again = await client.post(f"/booking-requests/{request_id}/status", headers=bearer(token_for("host-1")),
                              json={"status": "rejected"})
    assert again.status_code == 409


async def test_validation_errors_render_as_error_body(client, cabin):
    response = await client.get(f"/cabins/{cabin.id}/quote",
                                params={"start_date": "2025-09-04", "end_date": "2025-09-01"})
    assert response.status_code == 400
    assert response.json() == {"error": "Data wyjazdu musi być późniejsza niż data przyjazdu."}


async def test_quote_marks_up_price_for_anonymous_visitors(client, cabin, guest):
    params = {"start_date": "2025-09-01", "end_date": "2025-09-04"}
    anonymous = await client.get(f"/cabins/{cabin.id}/quote", params=params)
    signed_in = await client.get(f"/cabins/{cabin.id}/quote", params=params, headers=bearer(token_for("guest-1")))
    assert anonymous.json()["total"] == 1284
    assert signed_in.json()["total"] == 1200


async def test_public_listing_endpoints(client, make_cabin):
    await make_cabin(slug="chata-w-lesie")
    await make_cabin(slug="w-poczekalni", status=models.CabinStatus.PENDING)

    listing = await client.get("/cabins")
    assert [c["slug"] for c in listing.json()] == ["chata-w-lesie"]
    assert (await client.get("/cabins/w-poczekalni")).status_code == 404


async def test_og_metadata_serves_html_to_crawlers(client, make_cabin):
    await make_cabin(slug="chata-w-lesie")
    response = await client.get("/og-metadata", params={"path": "/cabin/chata-w-lesie"},
                                headers={"User-Agent": "facebookexternalhit/1.1"})
    assert response.headers["content-type"].startswith("text/html")
    assert "og:title" in response.text

    response = await client.get("/og-metadata", params={"path": "/cabin/chata-w-lesie"})
    assert response.json()["title"] == "Leśna Chata"


async def test_newsletter_endpoint(client):
    first = await client.post("/newsletter", json={"email": "fan@example.com"})
    second = await client.post("/newsletter", json={"email": "fan@example.com"})
    assert first.json() == {"success": True, "subscribed": True}
    assert second.json() == {"success": True, "subscribed": False}


async def test_host_creates_and_edits_a_listing(client, host, mailer):
    headers = bearer(token_for("host-1", "host@example.com"))
    response = await client.post("/cabins", headers=headers, json={
        "title": "Chata pod Tatrami",
        "price_per_night": 450,
        "images": [{"url": "https://cdn.example.com/a.webp", "is_main": True},
                   {"url": "https://cdn.example.com/b.webp", "is_main": True}],
        "ical_url": "https://www.airbnb.com/calendar/ical/1.ics",
    })
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "pending"
    assert created["slug"] == "chata-pod-tatrami"
    assert [i["is_main"] for i in created["images"]] == [True, False]

    response = await client.patch(f"/cabins/{created['id']}", headers=headers, json={"road_density": 9})
    assert response.status_code == 200
    assert response.json()["off_grid_total"] == 6.0

    response = await client.post(f"/cabins/{created['id']}/notify-admin", headers=headers)
    assert response.json() == {"success": True}


async def test_listing_edit_rejects_bad_feed_url(client, cabin, host):
    response = await client.patch(f"/cabins/{cabin.id}", headers=bearer(token_for("host-1")),
                                  json={"ical_url": "javascript:alert(1)"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid URL format"}


async def test_pending_listings_are_not_quoted(client, make_cabin):
    pending = await make_cabin(status=models.CabinStatus.PENDING)
    response = await client.get(f"/cabins/{pending.id}/quote",
                                params={"start_date": "2025-09-01", "end_date": "2025-09-04"})
    assert response.status_code == 404


async def test_sitemap_is_served_as_xml(client, make_cabin):
    await make_cabin(slug="chata-w-lesie")
    response = await client.get("/sitemap.xml")
    assert response.headers["content-type"].startswith("application/xml")
    assert "<loc>https://naodludzie.pl/cabin/chata-w-lesie</loc>" in response.text


async def test_sign_up_notice_needs_a_user(client, guest, mailer):
    assert (await client.post("/notify-admin-new-user", json={"role": "host"})).status_code == 401
    response = await client.post("/notify-admin-new-user", headers=bearer(token_for("guest-1")),
                                 json={"role": "host"})
    assert response.json() == {"success": True}
    assert "gospodarz" in mailer.to(config.ADMIN_EMAIL)[0].subject
