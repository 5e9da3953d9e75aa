import pytest
from fastapi.testclient import TestClient

from api.routes.relay import get_relay_service
from backend.services.relay.errors import RunInProgressError
from backend.services.relay.orchestrator import RelayPipeline
from backend.services.relay.relay_service import RelayService
from main import app

from fakes import FakeDestination, FakeSource, artifact, remote


ADMIN = {"X-Admin-Key": "test-admin-key"}


def _service(relay_config, source: FakeSource) -> RelayService:
    def factory(config):
        return RelayPipeline(config, source=source, destination=FakeDestination([remote("old.zpaq", -5)]))

    return RelayService(relay_config, pipeline_factory=factory, source_factory=lambda config: source)


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _use(service):
    app.dependency_overrides[get_relay_service] = lambda: service


def test_health(client):
    assert client.get("/health").json() == {"status": "OK"}


def test_run_requires_admin_key(client, relay_config):
    _use(_service(relay_config, FakeSource([artifact("b1.zpaq", 1)])))

    assert client.post("/relay/run").status_code == 401
    assert client.post("/relay/run", headers={"X-Admin-Key": "wrong"}).status_code == 403


def test_successful_run_returns_outcome(client, relay_config):
    source = FakeSource([artifact("b1.zpaq", 1, size=3)], payloads={"b1.zpaq": b"abc"})
    _use(_service(relay_config, source))

    response = client.post("/relay/run", headers=ADMIN)

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "success"
    assert body["state"] == "done"
    assert body["cleanup_complete"] is True
    assert body["artifact_name"] == "b1.zpaq"
    assert body["remote_name"].endswith(".zpaq")


def test_failed_run_returns_500_with_outcome(client, relay_config):
    _use(_service(relay_config, FakeSource(connect_error="host unreachable")))

    response = client.post("/relay/run", headers=ADMIN)

    assert response.status_code == 500
    body = response.json()
    assert body["status"] == "failure"
    assert body["error_kind"] == "TransferError"
    assert body["remote_name"] is None


def test_overlapping_run_returns_409(client, relay_config):
    class Busy(RelayService):
        async def run_once(self):
            raise RunInProgressError("A relay run is already in progress")

    _use(Busy(relay_config))

    assert client.post("/relay/run", headers=ADMIN).status_code == 409


def test_meta_describes_latest_artifact(client, relay_config):
    _use(_service(relay_config, FakeSource([artifact("b1.zpaq", 1), artifact("b2.zpaq", 2, source="listing")])))

    response = client.get("/relay/meta", headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["filename"] == "b2.zpaq"
    assert response.json()["timestamp_source"] == "listing"


def test_meta_maps_source_errors(client, relay_config):
    _use(_service(relay_config, FakeSource([])))
    assert client.get("/relay/meta", headers=ADMIN).status_code == 404

    _use(_service(relay_config, FakeSource(connect_error="refused")))
    assert client.get("/relay/meta", headers=ADMIN).status_code == 502


def test_status_is_public_and_reports_last_outcome(client, relay_config):
    source = FakeSource([artifact("b1.zpaq", 1, size=3)], payloads={"b1.zpaq": b"abc"})
    _use(_service(relay_config, source))

    assert client.get("/relay/status").json() == {"running": False, "last_outcome": None, "last_outcome_detail": None}

    client.post("/relay/run", headers=ADMIN)
    status = client.get("/relay/status").json()

    assert status["running"] is False
    assert status["last_outcome"]["status"] == "success"
    assert status["last_outcome"]["warning_count"] == 0


def test_public_status_hides_failure_details(client, relay_config):
    _use(_service(relay_config, FakeSource(connect_error="sftp.internal.example:22 refused")))
    client.post("/relay/run", headers=ADMIN)

    public = client.get("/relay/status")
    wrong_key = client.get("/relay/status", headers={"X-Admin-Key": "wrong"})
    admin = client.get("/relay/status", headers=ADMIN).json()

    assert "sftp.internal.example" not in public.text
    assert public.json()["last_outcome"]["status"] == "failure"
    assert public.json()["last_outcome_detail"] is None
    assert wrong_key.status_code == 200
    assert wrong_key.json()["last_outcome_detail"] is None
    assert admin["last_outcome_detail"]["error_kind"] == "TransferError"
    assert "sftp.internal.example" in admin["last_outcome_detail"]["error_message"]


def test_openapi_marks_protected_endpoints(client):
    paths = client.get("/openapi.json").json()["paths"]

    assert paths["/relay/run"]["post"]["security"] == [{"X-Admin-Key": []}]
    assert paths["/relay/status"]["get"]["security"] == [{}, {"X-Admin-Key": []}]


def test_invalid_relay_configuration_returns_503(client, monkeypatch):
    monkeypatch.setattr("api.routes.relay._relay_service", None)
    monkeypatch.setattr("api.routes.relay.settings.SFTP_HOST", "")

    response = client.post("/relay/run", headers=ADMIN)

    assert response.status_code == 503
    assert "SFTP_HOST" in response.json()["detail"]
