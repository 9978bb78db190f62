import time


def wait_for_event(client, type_, after=0, timeout=2.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        events = client.get("/v1/events", params={"after": after}).json()["events"]
        for e in events:
            if e["type"] == type_:
                return e
        time.sleep(0.02)
    return None


def test_capture_status_endpoint_exists(client):
    r = client.get("/v1/capture_status")
    assert r.status_code == 200
    body = r.json()
    assert set(body) == {"capturing", "captionsDetected", "captionsUpdating", "videoFound"}


def test_captions_ignored_until_capture_started(client):
    client.post("/v1/clear_session")
    r = client.post("/v1/captions", json={"text": "nobody is listening", "media_time": 1.0})
    assert r.status_code == 200
    assert r.json()["capturing"] is False
    assert r.json()["entries"] == 0


def test_caption_growth_replaces_entry(client):
    client.post("/v1/clear_session")
    r = client.post("/v1/start_capture")
    assert r.json()["capturing"] is True

    client.post("/v1/captions", json={"text": "the cell membrane is", "media_time": 10.0})
    r = client.post("/v1/captions", json={"text": "the cell membrane is semi-permeable", "media_time": 11.0})
    assert r.json()["entries"] == 1

    body = client.get("/v1/transcript").json()
    assert [e["text"] for e in body["transcript"]] == ["the cell membrane is semi-permeable"]
    assert body["currentChunk"]["text"] == "the cell membrane is semi-permeable"
    assert client.get("/v1/capture_status").json()["captionsDetected"] is True


def test_pause_finalizes_chunk_and_reports_disabled_ai(client):
    client.post("/v1/ai_settings", json={"enabled": False})
    client.post("/v1/clear_session")
    client.post("/v1/start_capture")
    client.post("/v1/captions", json={"text": "osmosis moves water across membranes", "media_time": 3.0})
    after = client.get("/v1/events").json()["last_seq"]

    r = client.post("/v1/pause_capture")
    assert r.status_code == 200
    body = r.json()
    assert body["capturing"] is False
    assert body["finalized_chunk_id"].startswith("chunk_")
    assert client.get("/v1/transcript").json()["currentChunk"] is None

    event = wait_for_event(client, "error", after=after)
    assert event is not None
    assert "disabled" in event["payload"]["message"]


def test_media_pause_finalizes_open_chunk(client):
    client.post("/v1/clear_session")
    client.post("/v1/start_capture")
    client.post("/v1/captions", json={"text": "active transport uses ATP", "media_time": 5.0})
    r = client.post("/v1/media", json={"current_time": 6.0, "paused": True, "video_found": True})
    assert r.status_code == 200
    assert r.json()["videoFound"] is True
    assert client.get("/v1/transcript").json()["currentChunk"] is None
    client.post("/v1/media", json={"paused": False})


def test_clear_session_resets_everything(client):
    client.post("/v1/start_capture")
    client.post("/v1/captions", json={"text": "something worth keeping", "media_time": 1.0})
    client.put("/v1/notes", json={"sections": [{"heading": "Kept Topic", "bullets": ["A bullet that is long enough"]}]})

    r = client.post("/v1/clear_session")
    assert r.json()["capturing"] is False

    assert client.get("/v1/transcript").json() == {"transcript": [], "currentChunk": None}
    assert client.get("/v1/notes").json()["sections"] == []


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
