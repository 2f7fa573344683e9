import pytest
from fastapi.testclient import TestClient

from conftest import ORIGIN, ORIGIN_ZONE, north_of
from zoneclash.api.deps import get_core
from zoneclash.database import get_db
from zoneclash.main import app


@pytest.fixture()
def client(core, session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_core] = lambda: core
    yield TestClient(app)
    app.dependency_overrides.clear()


def _as(actor_id):
    return {"X-Actor-Id": actor_id}


def _location(point=ORIGIN):
    return {"latitude": point[0], "longitude": point[1]}


def _claim(client, actor_id="alice", point=ORIGIN, zone_id=ORIGIN_ZONE):
    return client.post(f"/api/zones/{zone_id}/claim", json=_location(point), headers=_as(actor_id))


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_claim_zone(client):
    response = _claim(client)

    assert response.status_code == 200
    data = response.json()
    assert data["zone"]["owner_id"] == "alice"
    assert data["zone"]["is_claimed"] is True
    assert data["xp_gained"] == 10


def test_claim_too_far_is_forbidden(client):
    response = _claim(client, point=north_of(ORIGIN, 300))

    assert response.status_code == 403
    detail = response.json()["detail"]
    assert detail["error"] == "too_far_away"
    assert detail["required_radius"] == 20


def test_claim_taken_zone_conflicts(client):
    _claim(client, "alice")
    response = _claim(client, "bob")

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "zone_already_claimed"


def test_claim_requires_actor_header(client):
    response = client.post(f"/api/zones/{ORIGIN_ZONE}/claim", json=_location())
    assert response.status_code == 401


def test_claim_rejects_out_of_range_latitude(client):
    response = client.post(
        f"/api/zones/{ORIGIN_ZONE}/claim",
        json={"latitude": 95.0, "longitude": -73.0},
        headers=_as("alice"),
    )
    assert response.status_code == 422


def test_overlong_idempotency_key_is_rejected(client):
    headers = {**_as("alice"), "Idempotency-Key": "k" * 129}
    response = client.post(f"/api/zones/{ORIGIN_ZONE}/claim", json=_location(), headers=headers)
    assert response.status_code == 422


def test_unknown_zone_id_is_not_found(client):
    response = client.get("/api/zones/zone_bogus")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "zone_not_found"


def test_untouched_zone_reads_as_default(client, core):
    zone_id = core.grid.zone_id_of(40.001, -73.0)
    response = client.get(f"/api/zones/{zone_id}")

    assert response.status_code == 200
    data = response.json()
    assert data["zone"]["is_claimed"] is False
    assert data["status"] == "unclaimed"
    assert data["attack_history"] == []


def test_nearby_reports_status_for_viewer(client):
    _claim(client, "alice")

    response = client.get(
        "/api/zones/nearby",
        params={"lat": ORIGIN[0], "lng": ORIGIN[1], "radius": 150},
        headers=_as("alice"),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == len(data["zones"]) > 1
    assert data["zones"][0]["id"] == ORIGIN_ZONE
    assert data["zones"][0]["status"] == "owned"
    assert data["user_location"] == {"latitude": ORIGIN[0], "longitude": ORIGIN[1]}


def test_check_in(client):
    _claim(client, "alice")

    response = client.post(f"/api/zones/{ORIGIN_ZONE}/checkin", json=_location(), headers=_as("alice"))

    assert response.status_code == 200
    assert response.json()["checkin"]["success"] is True

    history = client.get("/api/zones/checkin-history", headers=_as("alice")).json()
    assert history["count"] == 1


def test_attack_cooldown_sets_retry_after(client, rng, settings):
    _claim(client, "alice")
    rng.always_fail()
    body = {"zone_id": ORIGIN_ZONE, **_location()}

    first = client.post("/api/attacks", json=body, headers=_as("bob"))
    assert first.status_code == 200
    assert first.json()["zone_captured"] is False

    second = client.post("/api/attacks", json=body, headers=_as("bob"))
    assert second.status_code == 429
    assert second.json()["detail"]["error"] == "on_cooldown"
    assert second.headers["Retry-After"] == str(settings.attack_cooldown_minutes * 60)


def test_attack_history_and_stats(client, rng):
    _claim(client, "alice")
    rng.always_fail()
    client.post("/api/attacks", json={"zone_id": ORIGIN_ZONE, **_location()}, headers=_as("bob"))

    received = client.get("/api/attacks", params={"type": "received"}, headers=_as("alice")).json()
    assert received["count"] == 1
    assert received["attacks"][0]["attacker_id"] == "bob"

    stats = client.get("/api/attacks/stats", headers=_as("bob")).json()
    assert stats["attacks_made"] == 1
    assert stats["attacks_lost"] == 1
    assert stats["attack_success_rate"] == 0.0


def test_actor_progression_and_counters(client):
    _claim(client, "alice")

    me = client.get("/api/actors/me", headers=_as("alice")).json()
    assert me == {"id": "alice", "xp": 10, "level": 1, "attack_power": 10, "zones_owned": 1}

    counters = client.get("/api/stats").json()
    assert counters["total_actors"] == 1
    assert counters["claimed_zones"] == 1
    assert counters["total_attacks"] == 0
