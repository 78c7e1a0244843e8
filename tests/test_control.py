def test_health_reports_store(client):
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ok"
    assert payload["components"]["store"] == "connected"
    assert payload["components"]["catalog"] == "3 classes"


def test_classes_listed_in_order(client):
    response = client.get("/api/v1/classes")
    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 3
    assert [item["name"] for item in payload["items"]] == ["ip", "user", "host"]
    assert payload["items"][1]["keys"][0] == {"pattern": "joe*", "window": 60, "limit": 5}


def test_unknown_class_is_404(client):
    response = client.get("/api/v1/classes/nosuch")
    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "CLASS_NOT_FOUND"


def test_decide_uses_engine(client):
    first = client.post("/api/v1/decide", json={"line": "user bob"})
    second = client.post("/api/v1/decide", json={"line": "user bob"})
    assert first.json() == {"code": 0, "kind": "Allowed", "detail": "1/1", "reply": "0 1/1"}
    assert second.json()["reply"] == "1 2/1"


def test_decide_rejects_empty_line(client):
    response = client.post("/api/v1/decide", json={"line": ""})
    assert response.status_code == 422


def test_stats_track_decisions(client):
    client.post("/api/v1/decide", json={"line": "ip 10.0.0.4"})
    client.post("/api/v1/decide", json={"line": "garbage"})
    payload = client.get("/api/v1/stats").json()
    assert payload["decisions"] == {"Allowed": 1, "BadInput": 1}
    assert payload["marks"] == 1


def test_purge_defaults_to_max_age(client, clock):
    client.post("/api/v1/decide", json={"line": "ip 10.0.0.4"})
    clock.advance(100)
    response = client.post("/api/v1/marks/purge")
    assert response.status_code == 200
    assert response.json() == {"removed": 1, "age": 90}


def test_purge_with_explicit_age(client, clock):
    client.post("/api/v1/decide", json={"line": "ip 10.0.0.4"})
    clock.advance(20)
    assert client.post("/api/v1/marks/purge", json={"age": 30}).json()["removed"] == 0
    assert client.post("/api/v1/marks/purge", json={"age": 10}).json()["removed"] == 1
