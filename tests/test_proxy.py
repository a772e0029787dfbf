"""
Tests for the analysis proxy and the Autoderm client
====================================================
The upstream service is never contacted: ``requests`` is replaced with
mocks and the proxy's classifier factory is overridden per test.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
import requests
from fastapi.testclient import TestClient

IMAGE = "data:image/png;base64,iVBORw0KGgo="
ACNE_PAYLOAD = {
    "predictions": [
        {"name": "Acne", "confidence": 0.82, "recommendation": "See a dermatologist"},
        {"name": "Rosacea", "confidence": 0.11},
    ]
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _response(status_code: int = 200, payload=None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.ok = 200 <= status_code < 400
    resp.text = text
    if payload is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload
    return resp


def _http_session(*responses) -> MagicMock:
    session = MagicMock()
    session.post.side_effect = list(responses)
    return session


@pytest.fixture
def client():
    from dermasight.api.proxy import app

    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def override_classifier():
    """Install a fake classifier factory and return it for inspection."""
    from dermasight.api.proxy import app, get_classifier_factory

    def _install(classifier):
        factory = MagicMock(return_value=classifier)
        app.dependency_overrides[get_classifier_factory] = lambda: factory
        return factory

    return _install


# ===================================================================
# Autoderm client
# ===================================================================

class TestAutodermClient:
    def test_missing_key_is_a_configuration_error(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.errors import ConfigurationError

        with pytest.raises(ConfigurationError):
            AutodermClient(api_key="")

    def test_from_env_without_key(self, monkeypatch):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.errors import ConfigurationError

        monkeypatch.delenv("AUTODERM_API_KEY", raising=False)
        with pytest.raises(ConfigurationError, match="not configured"):
            AutodermClient.from_env()

    def test_request_shape(self):
        from dermasight.api.classifier import AutodermClient

        session = _http_session(_response(200, ACNE_PAYLOAD))
        client = AutodermClient(api_key="secret", session=session)

        result = client.classify(IMAGE)

        assert result == ACNE_PAYLOAD
        session.post.assert_called_once()
        args, kwargs = session.post.call_args
        assert args[0] == "https://autoderm.ai/v1/query"
        assert kwargs["headers"]["Api-Key"] == "secret"
        assert kwargs["json"] == {
            "model": "autoderm_v2_2",
            "language": "en",
            "data": IMAGE,
        }

    def test_predictions_are_parsed_in_rank_order(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.schemas import ClassificationResult

        client = AutodermClient(api_key="k", session=_http_session(_response(200, ACNE_PAYLOAD)))
        preds = ClassificationResult.model_validate(client.classify(IMAGE)).predictions

        assert [p.name for p in preds] == ["Acne", "Rosacea"]
        assert preds[0].confidence == pytest.approx(0.82)
        assert preds[1].recommendation is None

    def test_empty_prediction_list_is_not_an_error(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.schemas import ClassificationResult

        client = AutodermClient(api_key="k", session=_http_session(_response(200, {"predictions": []})))
        assert ClassificationResult.model_validate(client.classify(IMAGE)).predictions == []

    def test_503_is_service_unavailable_and_not_retried(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.errors import ServiceUnavailable

        session = _http_session(_response(503, text="maintenance"))
        client = AutodermClient(api_key="k", session=session)

        with pytest.raises(ServiceUnavailable) as info:
            client.classify(IMAGE)
        assert info.value.status_code == 503
        assert "maintenance" not in str(info.value)
        assert session.post.call_count == 1

    def test_client_error_status_is_upstream_error(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.errors import ServiceUnavailable, UpstreamError

        client = AutodermClient(api_key="k", session=_http_session(_response(401, text="bad key")))
        with pytest.raises(UpstreamError) as info:
            client.classify(IMAGE)
        assert not isinstance(info.value, ServiceUnavailable)
        assert str(info.value) == "Autoderm API error: 401"

    def test_single_retry_on_connection_error(self):
        from dermasight.api.classifier import AutodermClient

        session = _http_session(
            requests.exceptions.ConnectionError("reset"),
            _response(200, ACNE_PAYLOAD),
        )
        client = AutodermClient(api_key="k", session=session)

        assert client.classify(IMAGE) == ACNE_PAYLOAD
        assert session.post.call_count == 2

    def test_gives_up_after_second_network_failure(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.errors import ServiceUnavailable

        session = _http_session(
            requests.exceptions.Timeout("slow"),
            requests.exceptions.Timeout("slow"),
            _response(200, ACNE_PAYLOAD),
        )
        client = AutodermClient(api_key="k", session=session)

        with pytest.raises(ServiceUnavailable):
            client.classify(IMAGE)
        assert session.post.call_count == 2

    def test_non_json_success_body(self):
        from dermasight.api.classifier import AutodermClient
        from dermasight.app.errors import UpstreamError

        client = AutodermClient(api_key="k", session=_http_session(_response(200, None, "<html>")))
        with pytest.raises(UpstreamError):
            client.classify(IMAGE)


# ===================================================================
# Proxy HTTP contract
# ===================================================================

class TestProxyPreflight:
    def test_options_without_configuration(self, client, monkeypatch):
        monkeypatch.delenv("AUTODERM_API_KEY", raising=False)

        resp = client.options("/analyze-skin")

        assert resp.status_code == 200
        assert resp.content == b""
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "content-type" in resp.headers["access-control-allow-headers"]

    def test_options_never_builds_a_classifier(self, client, override_classifier):
        factory = override_classifier(MagicMock())
        assert client.options("/analyze-skin").status_code == 200
        factory.assert_not_called()


class TestProxyAnalyze:
    def test_success_relays_upstream_payload_verbatim(self, client, override_classifier):
        payload = {**ACNE_PAYLOAD, "extra": {"model_version": "2.2"}}
        classifier = MagicMock()
        classifier.classify.return_value = payload
        override_classifier(classifier)

        resp = client.post("/analyze-skin", json={"imageBase64": IMAGE})

        assert resp.status_code == 200
        assert resp.json() == payload
        assert resp.headers["access-control-allow-origin"] == "*"
        classifier.classify.assert_called_once_with(IMAGE)

    def test_missing_image_never_invokes_classifier(self, client, override_classifier):
        classifier = MagicMock()
        factory = override_classifier(classifier)

        resp = client.post("/analyze-skin", json={})

        assert resp.status_code == 500
        assert resp.json() == {"error": "No image data provided"}
        assert resp.headers["access-control-allow-origin"] == "*"
        factory.assert_not_called()
        classifier.classify.assert_not_called()

    def test_empty_image_string(self, client, override_classifier):
        factory = override_classifier(MagicMock())
        resp = client.post("/analyze-skin", json={"imageBase64": ""})
        assert resp.status_code == 500
        assert "error" in resp.json()
        factory.assert_not_called()

    def test_body_that_is_not_json(self, client, override_classifier):
        factory = override_classifier(MagicMock())
        resp = client.post(
            "/analyze-skin",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert resp.status_code == 500
        assert resp.json() == {"error": "No image data provided"}
        factory.assert_not_called()

    def test_missing_credential_fails_before_outbound_call(self, client, monkeypatch):
        monkeypatch.delenv("AUTODERM_API_KEY", raising=False)

        with patch("requests.Session.post") as post:
            resp = client.post("/analyze-skin", json={"imageBase64": IMAGE})

        assert resp.status_code == 500
        assert "not configured" in resp.json()["error"]
        post.assert_not_called()

    def test_upstream_503_becomes_generic_500(self, client, override_classifier):
        from dermasight.api.classifier import AutodermClient

        session = _http_session(_response(503, text="upstream stack trace"))
        override_classifier(AutodermClient(api_key="k", session=session))

        resp = client.post("/analyze-skin", json={"imageBase64": IMAGE})

        assert resp.status_code == 500
        assert resp.json() == {"error": "Autoderm API error: 503"}
        assert session.post.call_count == 1

    def test_error_body_matches_error_response_model(self, client, override_classifier):
        from dermasight.app.errors import UpstreamError
        from dermasight.app.schemas import ErrorResponse

        classifier = MagicMock()
        classifier.classify.side_effect = UpstreamError("Autoderm API error: 401", status_code=401)
        override_classifier(classifier)

        resp = client.post("/analyze-skin", json={"imageBase64": IMAGE})

        assert resp.status_code == 500
        assert ErrorResponse.model_validate(resp.json()).error == "Autoderm API error: 401"
        assert set(resp.json()) == {"error"}

    def test_unexpected_exception_is_reported_as_error(self, client, override_classifier):
        classifier = MagicMock()
        classifier.classify.side_effect = RuntimeError("boom")
        override_classifier(classifier)

        resp = client.post("/analyze-skin", json={"imageBase64": IMAGE})

        assert resp.status_code == 500
        assert resp.json() == {"error": "An error occurred"}

    def test_health_reports_configuration(self, client, monkeypatch):
        monkeypatch.setenv("AUTODERM_API_KEY", "k")
        assert client.get("/health").json() == {"status": "ok", "classifier_configured": True}
        monkeypatch.delenv("AUTODERM_API_KEY")
        assert client.get("/health").json()["classifier_configured"] is False
