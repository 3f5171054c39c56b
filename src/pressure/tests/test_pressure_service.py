from fastapi.testclient import TestClient

from src.pressure.config import Settings
from src.pressure.asgi import app
from src.pressure.pressure_service import create_app
from src.pressure.shutdown.coordinator import ShutdownCoordinator
from src.pressure.ledger.memory_ledger import MemoryLedger


def _client(**overrides) -> TestClient:
    settings = Settings(**{"chunk_bytes": 1_000_000, "max_duration_ms": 10000, **overrides})
    ledger = MemoryLedger(measure=lambda: 0)
    coordinator = ShutdownCoordinator(ledger, 30.0, exit_fn=lambda code: None)
    return TestClient(create_app(settings, ledger=ledger, coordinator=coordinator), raise_server_exceptions=False)


def test_root():
    r = TestClient(app).get("/")
    assert r.status_code == 200
    assert "pressure" in r.text


def test_health_format():
    r = _client().get("/health")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "healthy"
    assert body["state"] == "running"
    assert "T" in body["timestamp"]
    assert body["uptimeSeconds"] >= 0
    assert body["memory"]["heapUsedMB"] > 0
    assert "heapTotalMB" in body["memory"]


def test_security_headers():
    r = _client().get("/health")
    assert r.headers["x-content-type-options"] == "nosniff"
    assert r.headers["x-frame-options"] == "SAMEORIGIN"


def test_stress_then_clear():
    client = _client()
    r = client.get("/stress?duration=100&chunks=3")
    assert r.status_code == 200
    body = r.json()
    assert body["message"] == "Stress test completed"
    assert body["mode"] == "combined"
    assert 100 <= body["durationMs"] < 1000
    assert body["reservedBytes"] == 3_000_000
    assert abs(body["totalMemoryStoredMB"] - 3) < 0.5
    assert isinstance(body["result"], int)

    r2 = client.get("/clear")
    assert r2.status_code == 200
    cleared = r2.json()
    assert cleared["freedMB"] >= 0
    assert abs(cleared["releasedMB"] - 3) < 0.5
    assert client.app.state.ledger.total_bytes() == 0

    r3 = client.get("/clear")
    assert r3.json()["freedMB"] == 0


def test_stress_memory_mode_has_no_result():
    r = _client().get("/stress?mode=memory&chunks=2")
    assert r.status_code == 200
    assert r.json()["result"] is None
    assert r.json()["reservedBytes"] == 2_000_000


def test_stress_over_ceiling_is_rejected():
    client = _client()
    r = client.get("/stress?duration=200000")
    assert r.status_code == 400
    body = r.json()
    assert body["error"] == "ceiling_exceeded"
    assert "message" in body
    assert client.app.state.ledger.total_bytes() == 0


def test_stress_bad_parameters():
    client = _client()
    r = client.get("/stress?duration=abc")
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"

    r = client.get("/stress?duration=10&mode=disk")
    assert r.status_code == 400

    r = client.get("/stress?duration=10&chunks=-1")
    assert r.status_code == 400


def test_draining_rejects_stress_but_serves_health():
    client = _client()
    coordinator = client.app.state.coordinator
    coordinator.begin_drain()

    r = client.get("/stress?duration=10&chunks=1")
    assert r.status_code == 503
    assert r.json()["error"] == "draining"

    h = client.get("/health")
    assert h.status_code == 200
    assert h.json()["state"] == "draining"
    coordinator.server_stopped()


def _break_dispatch(client: TestClient) -> None:
    def boom(req):
        raise RuntimeError("ledger exploded")

    client.app.state.dispatcher.dispatch = boom


def test_unhandled_error_is_generic_in_production():
    client = _client(app_env="production")
    _break_dispatch(client)
    r = client.get("/stress?duration=10&chunks=1")
    assert r.status_code == 500
    assert r.json() == {"error": "Internal Server Error", "message": "Something went wrong"}
    assert r.headers["x-content-type-options"] == "nosniff"
    assert client.get("/health").status_code == 200


def test_unhandled_error_is_verbose_in_development():
    client = _client(app_env="development")
    _break_dispatch(client)
    r = client.get("/stress?duration=10&chunks=1")
    assert r.status_code == 500
    assert r.json()["message"] == "ledger exploded"


def test_clear_reports_measured_heap_drop():
    # real psutil measurement: 1MB bytearrays are returned to the OS on release
    client = TestClient(create_app(Settings(chunk_bytes=1_000_000)))
    r = client.get("/stress?duration=100&chunks=3")
    assert r.status_code == 200

    cleared = client.get("/clear").json()
    assert cleared["freedMB"] > 0
    assert client.app.state.ledger.total_bytes() == 0
