from fastapi.testclient import TestClient

from app.core.config import Settings
from app.main import create_app
from app.services.oidc import FakeVerifier
from tests.mocks.github import TEST_JWT_SECRET


def make_client():
    return TestClient(create_app(Settings(JWT_SECRET=TEST_JWT_SECRET), verifier=FakeVerifier()))


class TestProbes:
    def test_healthz(self):
        response = make_client().get("/healthz")
        assert response.status_code == 200
        assert response.text == "ok"

    def test_readyz(self):
        response = make_client().get("/readyz")
        assert response.status_code == 200
        assert response.text == "ok"

    def test_probes_do_not_touch_pipeline(self):
        verifier = FakeVerifier()
        client = TestClient(create_app(Settings(JWT_SECRET=TEST_JWT_SECRET), verifier=verifier))
        client.get("/healthz")
        client.get("/readyz")
        assert verifier.calls == 0


class TestMetrics:
    def test_metrics_exposition(self):
        client = make_client()
        client.post("/auth/github-oidc", json={"oidc_token": "token"})

        response = client.get("/metrics")
        assert response.status_code == 200
        assert "token_exchanges_total" in response.text
        assert "http_requests_total" in response.text

    def test_lifespan_runs(self):
        with make_client() as client:
            assert client.get("/healthz").status_code == 200
