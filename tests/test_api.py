import pytest

from rendezvous.config import settings
from rendezvous.core.exceptions import CapacityError

URL = f"{settings.API_PREFIX}/signaling"


def post(client, **body):
    return client.post(URL, json=body)


def test_preflight(client):
    response = client.options(URL)

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_browser_preflight_has_empty_body(client):
    response = client.options(
        URL,
        headers={"Origin": "http://example.test", "Access-Control-Request-Method": "POST"},
    )

    assert response.status_code == 200
    assert response.content == b""
    assert response.headers["access-control-allow-origin"] == "*"
    assert "POST" in response.headers["access-control-allow-methods"]


def test_cross_origin_post_is_readable(client):
    response = client.post(URL, json={"action": "poll", "userId": "a"}, headers={"Origin": "http://example.test"})

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"


def test_unsupported_method(client):
    response = client.put(URL, json={})

    assert response.status_code == 405
    assert response.headers["access-control-allow-origin"] == "*"


def test_health_snapshot(client):
    post(client, action="join", userId="a")

    body = client.get(URL).json()

    assert body["status"] == "online"
    assert body["stats"]["waiting"] == 1
    assert body["stats"]["matches"] == 0
    assert body["queueUserIds"] == ["a"]
    assert "scores" not in body


def test_verbose_snapshot_needs_debug(client, monkeypatch):
    post(client, action="join", userId="a", timezone=1, declaredInfo={"gender": "Male"})

    assert "scores" not in client.get(URL, params={"verbose": "true"}).json()

    monkeypatch.setattr(settings, "DEBUG", True)
    body = client.get(URL, params={"verbose": "true"}).json()

    assert body["users"][0]["userId"] == "a"
    assert body["users"][0]["declaredInfo"]["gender"] == "Male"
    assert body["scores"] == {"a": {}}
    assert body["requestLog"][0]["action"] == "join"


def test_missing_user_id(client):
    response = post(client, action="join")

    assert response.status_code == 400
    assert response.json()["reason"] == "missing_user_id"


def test_unknown_action(client):
    response = post(client, action="dance", userId="a")

    assert response.status_code == 400
    assert response.json()["reason"] == "unknown_action"


@pytest.mark.parametrize("action", [["join"], {"name": "join"}, 7, None])
def test_non_string_action(client, action):
    response = client.post(URL, json={"action": action, "userId": "a"})

    assert response.status_code == 400
    assert response.json()["reason"] == "unknown_action"


def test_unrecognized_gender_is_accepted(client):
    response = post(client, action="join", userId="a", declaredInfo={"gender": "Other"})

    assert response.status_code == 200
    assert response.json()["status"] == "queued"


@pytest.mark.parametrize(
    "body",
    [
        {"action": "join", "userId": "a", "timezone": "east"},
        {"action": "join", "userId": "a", "timezone": 99},
        {"action": "join", "userId": "a", "declaredInfo": {"gender": 5}},
        {"action": "send-signal", "userId": "a", "matchId": "m"},
        {"action": "p2p-connected", "userId": "a", "matchId": "m"},
    ],
)
def test_malformed_fields(client, body):
    response = client.post(URL, json=body)

    assert response.status_code == 400
    assert response.json()["reason"] == "invalid_request"


def test_malformed_json(client):
    response = client.post(URL, content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json()["reason"] == "malformed_json"


def test_text_plain_body_is_accepted(client):
    response = client.post(
        URL,
        content=b'{"action": "join", "userId": "a"}',
        headers={"Content-Type": "text/plain"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "queued"


def test_send_signal_to_missing_match(client):
    response = post(client, action="send-signal", userId="a", matchId="gone", type="offer", payload={})

    assert response.status_code == 404
    assert response.json()["reason"] == "match_not_found"


def test_send_signal_from_outsider(client):
    post(client, action="join", userId="a")
    match_id = post(client, action="join", userId="b").json()["matchId"]

    response = post(client, action="send-signal", userId="eve", matchId=match_id, type="offer", payload={})

    assert response.status_code == 403


def test_capacity_error_is_retryable(client, monkeypatch):
    async def full(entry):
        raise CapacityError("Waiting queue is full", retry_after=5)

    monkeypatch.setattr(client.app.state.dispatcher.pool, "upsert", full)

    response = post(client, action="join", userId="a")

    assert response.status_code == 503
    assert response.headers["retry-after"] == "5"
    assert response.json()["retryAfter"] == 5


def test_unexpected_failure_is_opaque(client, monkeypatch):
    async def boom(user_id, now):
        raise RuntimeError("secret internals")

    monkeypatch.setattr(client.app.state.dispatcher.matchmaker, "poll", boom)

    response = post(client, action="poll", userId="a")

    assert response.status_code == 500
    assert response.json() == {"error": "Server error", "reason": "internal_error"}


def test_get_with_user_id_polls(client):
    post(client, action="join", userId="a")

    body = client.get(URL, params={"userId": "a"}).json()

    assert body["status"] == "waiting"
    assert body["position"] == 1


def test_end_to_end_scenario(client, clock):
    a = post(client, action="join", userId="A", timezone=7, declaredInfo={"gender": "Male"}).json()
    assert a["status"] == "queued"
    assert a["position"] == 1

    clock.advance(5)
    b = post(client, action="instant-match", userId="B", timezone=8, declaredInfo={"gender": "Female"}).json()
    assert b["status"] == "matched"
    assert b["partnerId"] == "A"
    assert b["isInitiator"] is False
    assert b["compatibilityScore"] == 1 + 19 + 4 + 2
    match_id = b["matchId"]

    sent = post(client, action="send-signal", userId="B", matchId=match_id, type="offer", payload={"sdp": "v=0"}).json()
    assert sent["status"] == "sent"
    assert sent["queueLength"] == 1

    first = post(client, action="get-signals", userId="A").json()
    assert first["status"] == "matched"
    assert first["isInitiator"] is True
    assert [(s["type"], s["from"]) for s in first["signals"]] == [("offer", "B")]
    assert post(client, action="poll", userId="A").json()["signals"] == []

    gone = post(client, action="disconnect", userId="A").json()
    assert gone == {"status": "disconnected", "removed": True, "timestamp": gone["timestamp"]}

    after = post(client, action="poll", userId="B").json()
    assert after["status"] == "not_found"
    assert [s["type"] for s in after["signals"]] == ["disconnect-notice"]

    assert client.get(URL).json()["stats"]["matches"] == 0
    assert post(client, action="poll", userId="B").json() == {
        "status": "not_found",
        "signals": [],
        "timestamp": after["timestamp"],
    }


def test_p2p_connected_releases_the_match(client):
    post(client, action="join", userId="a")
    match_id = post(client, action="join", userId="b").json()["matchId"]

    done = post(client, action="p2p-connected", userId="a", matchId=match_id, partnerId="b").json()
    assert done["status"] == "p2p_connected"
    assert done["removed"] is True

    again = post(client, action="p2p-connected", userId="b", matchId=match_id, partnerId="a").json()
    assert again["removed"] is False
    assert client.get(URL).json()["stats"]["matches"] == 0


def test_expired_match_is_not_found(client, clock):
    post(client, action="join", userId="a")
    match_id = post(client, action="join", userId="b").json()["matchId"]

    clock.advance(settings.MATCH_LIFETIME_SECONDS + 1)

    assert post(client, action="poll", userId="a").json()["status"] == "not_found"
    response = post(client, action="send-signal", userId="a", matchId=match_id, type="offer", payload={})
    assert response.status_code == 404
