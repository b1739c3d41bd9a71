from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from tagmap.apps.api.main import create_app
from tagmap.providers.auth.static import StaticTokenVerifier
from tagmap.providers.storage.local import LocalImageStorage
from tagmap.providers.users.profiles import ProfileUserDirectory
from tagmap.services.container import build_services
from tagmap.tests.utils.factories import make_caller


ALICE = {"Authorization": "Bearer alice-token"}
BOB = {"Authorization": "Bearer bob-token"}

_TAG_BODY = {
    "location_name": "North gate ramp",
    "accessibility": 4.5,
    "category": {"mission_name": "facility", "sub_type_name": "ramp"},
    "coordinates": {"latitude": "25.0173", "longitude": "121.5398"},
    "floor": 1,
    "description": "Wide ramp next to the bike racks",
    "image_upload_number": 1,
}


@pytest.fixture
def services(engine):
    return build_services(
        engine=engine,
        auth_verifier=StaticTokenVerifier({"alice-token": "alice", "bob-token": "bob"}),
        image_storage=LocalImageStorage("http://images.test"),
    )


@pytest.fixture
async def client(services):
    app = create_app(services)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _create_tag(client: AsyncClient, headers=ALICE) -> dict:
    response = await client.post("/v1/tags", json=_TAG_BODY, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


@pytest.mark.asyncio
async def test_create_and_fetch_tag(client) -> None:
    created = await _create_tag(client)
    tag = created["tag"]
    assert tag["status"]["status_name"] == "pending"
    assert tag["coordinates"] == {"latitude": "25.0173", "longitude": "121.5398"}
    assert created["image_upload_number"] == 1
    assert len(created["image_upload_urls"]) == 1
    assert created["image_delete_status"] is None

    response = await client.get(f"/v1/tags/{tag['id']}", headers={"X-Request-Id": "req-123"})
    assert response.status_code == 200
    payload = response.json()
    assert payload["meta"] == {"request_id": "req-123", "api_version": "v1"}
    assert response.headers["X-Request-Id"] == "req-123"
    assert payload["data"]["location_name"] == "North gate ramp"
    assert [record["status_name"] for record in payload["data"]["status_history"]] == ["pending"]


@pytest.mark.asyncio
async def test_write_requires_login(client) -> None:
    response = await client.post("/v1/tags", json=_TAG_BODY)
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AUTH_FORBIDDEN"

    response = await client.post("/v1/tags", json=_TAG_BODY, headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_UNAUTHORIZED"
    assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_validation_errors_use_envelope(client) -> None:
    body = {**_TAG_BODY, "coordinates": {"latitude": "123", "longitude": "121.5"}}
    response = await client.post("/v1/tags", json=body, headers=ALICE)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    response = await client.post("/v1/tags", json={**_TAG_BODY, "tenant": "x"}, headers=ALICE)
    assert response.status_code == 422
    assert response.json()["error"]["code"] == "REQUEST_VALIDATION_ERROR"

    response = await client.get("/v1/tags", params={"page_size": 0})
    assert response.status_code == 422

    response = await client.get("/v1/tags", params={"cursor": "forged.cursor"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_tag_is_404(client) -> None:
    response = await client.get("/v1/tags/missing")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"

    response = await client.post("/v1/tags/missing/votes", json={"action": "upvote"}, headers=ALICE)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_vote_flow_with_lowered_threshold(client) -> None:
    tag_id = (await _create_tag(client))["tag"]["id"]

    response = await client.put("/v1/archived-threshold", json={"value": 1}, headers=ALICE)
    assert response.status_code == 200
    assert response.json()["data"] == {"value": 1}

    response = await client.post(f"/v1/tags/{tag_id}/votes", json={"action": "upvote"}, headers=BOB)
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["number_of_up_vote"] == 1
    assert data["has_up_voted"] is True
    assert data["status_change"]["status_name"] == "verified"

    response = await client.post(f"/v1/tags/{tag_id}/votes", json={"action": "upvote"}, headers=BOB)
    assert response.json()["data"]["status_change"] is None

    response = await client.get(f"/v1/tags/{tag_id}/votes")
    assert response.json()["data"] == {"tag_id": tag_id, "number_of_up_vote": 1, "has_up_voted": False}

    response = await client.delete(f"/v1/tags/{tag_id}/votes", headers=ALICE)
    assert response.json()["data"] == {"tag_id": tag_id, "cleared": 1}


@pytest.mark.asyncio
async def test_threshold_update_validation(client) -> None:
    response = await client.put("/v1/archived-threshold", json={"value": 0}, headers=ALICE)
    assert response.status_code == 422
    response = await client.put("/v1/archived-threshold", json={"value": 3})
    assert response.status_code == 403
    response = await client.get("/v1/archived-threshold")
    assert response.json()["data"] == {"value": 5}


@pytest.mark.asyncio
async def test_status_update_and_listing(client) -> None:
    kept = (await _create_tag(client))["tag"]["id"]
    archived = (await _create_tag(client, headers=BOB))["tag"]["id"]

    response = await client.post(
        f"/v1/tags/{archived}/status",
        json={"status_name": "archived", "description": "stale"},
        headers=ALICE,
    )
    assert response.status_code == 201
    assert response.json()["data"]["status_name"] == "archived"

    response = await client.get("/v1/tags")
    assert [item["id"] for item in response.json()["data"]["items"]] == [kept]

    response = await client.get("/v1/users/bob/tags")
    items = response.json()["data"]["items"]
    assert [item["id"] for item in items] == [archived]
    assert items[0]["status"]["status_name"] == "archived"

    response = await client.post(
        f"/v1/tags/{kept}/status", json={"status_name": "gone"}, headers=ALICE
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_listing_pagination_over_http(client) -> None:
    ids = [(await _create_tag(client))["tag"]["id"] for _ in range(3)]

    first = (await client.get("/v1/tags", params={"page_size": 2})).json()["data"]
    assert first["next_cursor"]
    second = (
        await client.get("/v1/tags", params={"page_size": 2, "cursor": first["next_cursor"]})
    ).json()["data"]
    seen = [item["id"] for item in first["items"] + second["items"]]
    assert sorted(seen) == sorted(ids)
    assert len(set(seen)) == 3
    assert second["next_cursor"] is None


@pytest.mark.asyncio
async def test_patch_tag_and_delete_image(client) -> None:
    created = await _create_tag(client)
    tag_id = created["tag"]["id"]
    image_url = created["image_upload_urls"][0]

    response = await client.patch(
        f"/v1/tags/{tag_id}",
        json={"description": "Ramp is closed on weekends", "image_delete_urls": [image_url]},
        headers=BOB,
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["tag"]["description"] == "Ramp is closed on weekends"
    assert data["tag"]["image_urls"] == []
    assert data["image_delete_status"] is True
    assert data["tag"]["location_name"] == "North gate ramp"


@pytest.mark.asyncio
async def test_view_count_endpoint(client) -> None:
    tag_id = (await _create_tag(client))["tag"]["id"]
    for _ in range(2):
        response = await client.post(f"/v1/tags/{tag_id}/views")
        assert response.status_code == 202
    response = await client.post("/v1/tags/missing/views")
    assert response.status_code == 202

    response = await client.get(f"/v1/tags/{tag_id}")
    assert response.json()["data"]["view_count"] == 2


@pytest.mark.asyncio
async def test_guide_flag_endpoints(client) -> None:
    response = await client.get("/v1/me/guide")
    assert response.json()["data"] == {"has_read_guide": False}

    response = await client.get("/v1/me/guide", headers=ALICE)
    assert response.json()["data"] == {"has_read_guide": False}

    response = await client.post("/v1/me/guide", headers=ALICE)
    assert response.status_code == 200
    assert response.json()["data"] == {"has_read_guide": True}

    response = await client.get("/v1/me/guide", headers=ALICE)
    assert response.json()["data"] == {"has_read_guide": True}

    response = await client.post("/v1/me/guide")
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_health_reports_process_state(client) -> None:
    response = await client.get("/v1/health")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "ok"
    assert data["archived_threshold"] == 5
    assert data["subscribers"] == {"archived_threshold.changed": 0, "tag.status_changed": 0}


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client) -> None:
    response = await client.get("/v1/nothing-here")
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_responses_carry_author_display_names(client, services) -> None:
    await services.users.remember_caller(make_caller("alice"))
    tag_id = (await _create_tag(client))["tag"]["id"]

    response = await client.post(
        f"/v1/tags/{tag_id}/status", json={"status_name": "verified"}, headers=BOB
    )
    # bob has no cached profile, so his uid stands in for the name.
    assert response.json()["data"]["created_by_name"] == "bob"

    tag = (await client.get(f"/v1/tags/{tag_id}")).json()["data"]
    assert tag["created_by"] == "alice"
    assert tag["created_by_name"] == "Alice"
    assert tag["status"]["created_by_name"] == "bob"
    assert [record["created_by_name"] for record in tag["status_history"]] == ["Alice", "bob"]


@pytest.mark.asyncio
async def test_listing_resolves_names_in_one_lookup(client, services, monkeypatch) -> None:
    await services.users.remember_caller(make_caller("bob"))
    await _create_tag(client)
    await _create_tag(client, headers=BOB)
    await _create_tag(client, headers=BOB)

    lookups: list[list[str]] = []
    original = ProfileUserDirectory.get_display_names

    async def _counting(self, uids):
        uids = list(uids)
        lookups.append(uids)
        return await original(self, uids)

    monkeypatch.setattr(ProfileUserDirectory, "get_display_names", _counting)
    items = (await client.get("/v1/tags")).json()["data"]["items"]

    assert len(items) == 3
    assert len(lookups) == 1
    assert sorted(lookups[0]) == ["alice", "bob"]
    assert {item["created_by"]: item["created_by_name"] for item in items} == {
        "alice": "alice",
        "bob": "Bob",
    }
