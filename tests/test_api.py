from fastapi.testclient import TestClient

from dreamforge.api.server import create_app
from dreamforge.app import DreamForgeApp
from dreamforge.config import AppConfig, StorageConfig

from fakes import IMAGE_B64, FakeVisionProvider, UnreachableBackend


def _client(environment="test", provider=None, durable_backend=None):
    config = AppConfig(environment=environment, storage=StorageConfig(enabled=False))
    app = DreamForgeApp(config, vision_provider=provider or FakeVisionProvider(), durable_backend=durable_backend)
    return TestClient(create_app(app))


def test_dream_caption_request():
    with _client() as client:
        response = client.post("/api/dream", json={"prompt": "Describe this image", "image": IMAGE_B64})

    assert response.status_code == 200
    body = response.json()
    assert body["skill"] == "caption"
    assert body["verified"] is True
    assert body["analysis"] is None
    assert body["usage"]["totalCalls"] == 1


def test_dream_rejects_empty_prompt():
    with _client() as client:
        response = client.post("/api/dream", json={"prompt": "", "image": IMAGE_B64})
        usage = client.get("/api/usage").json()

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"
    assert response.json()["details"][0]["loc"] == ["prompt"]
    assert usage["summary"]["totalCalls"] == 0


def test_dream_rejects_non_json_body():
    with _client() as client:
        response = client.post("/api/dream", content=b"prompt=hi", headers={"content-type": "application/json"})
    assert response.status_code == 400


def test_vision_failure_returns_500_and_is_recorded():
    with _client(provider=FakeVisionProvider(fail_on=("detect",))) as client:
        response = client.post("/api/dream", json={"prompt": "detect the cars", "image": IMAGE_B64})
        usage = client.get("/api/usage").json()

    assert response.status_code == 500
    assert response.json()["error"] == "Internal server error"
    assert "503" in response.json()["message"]
    assert usage["recentHistory"][0]["success"] is False
    assert usage["summary"]["successRate"] == 0


def test_production_hides_error_details():
    with _client(environment="production", provider=FakeVisionProvider(fail_on=("caption",))) as client:
        response = client.post("/api/dream", json={"prompt": "caption this", "image": IMAGE_B64})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error", "message": "Something went wrong"}


def test_unreachable_database_still_serves_requests():
    with _client(durable_backend=UnreachableBackend()) as client:
        response = client.post("/api/dream", json={"prompt": "how many dogs?", "image": IMAGE_B64})
        usage = client.get("/api/usage").json()
        health = client.get("/health").json()

    assert response.status_code == 200
    assert usage["summary"]["totalCalls"] == 1
    assert usage["recentHistory"][0]["prompt"] == "how many dogs?"
    assert health == {"status": "ok", "llm": False, "durableStorage": True}


def test_usage_report_parameters():
    with _client() as client:
        for prompt in ("find the dog", "caption this", "where is the cat?"):
            client.post("/api/dream", json={"prompt": prompt, "image": IMAGE_B64})
        report = client.get("/api/usage", params={"timeRangeDays": 30, "limit": 2, "detailed": "true"}).json()

    assert report["success"] is True
    assert report["metadata"]["timeRangeDays"] == 30
    assert report["metadata"]["historyLimit"] == 2
    assert len(report["recentHistory"]) == 2
    assert report["summary"]["totalCalls"] == 3
    assert report["summary"]["topSkill"] == "detect"
    assert set(report["detailed"]) == {"dailyTrends", "skillPerformance", "errorAnalysis"}


def test_usage_rejects_out_of_range_parameters():
    with _client() as client:
        assert client.get("/api/usage", params={"limit": 0}).status_code == 422
        assert client.get("/api/usage", params={"timeRangeDays": 400}).status_code == 422


def test_other_methods_are_not_allowed():
    with _client() as client:
        assert client.get("/api/dream").status_code == 405
        assert client.delete("/api/dream").json() == {"error": "Method not allowed"}
        assert client.post("/api/usage").status_code == 405


def test_head_and_options_get_the_same_405_body():
    with _client() as client:
        for path in ("/api/dream", "/api/usage"):
            assert client.head(path).status_code == 405
            options = client.options(path)
            assert options.status_code == 405
            assert options.json() == {"error": "Method not allowed"}
