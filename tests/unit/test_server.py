"""Unit tests for the FastAPI analysis endpoint: stubbed vision and auth."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from chart_signal.config import Settings
from chart_signal.errors import NotAuthenticatedError, TransportError, VisionServiceError
from chart_signal.response_parser import DEFAULT_CONFIDENCE, parse_analysis
from chart_signal.server import build_analysis_payload, create_app

IMAGE = "data:image/png;base64,iVBORw0KGgo="
PATH = "/functions/v1/analyze-screenshot"

MODEL_TEXT = """### SIGNAL TYPE
BUY

### CONFIDENCE
85%

### ANALYSIS
- **RSI:** 58 (above 50, bullish)

### ENTRY POINT
174.90 (current market price)

### TARGET PRICE
175.30

### STOP LOSS
174.40

### RISK ASSESSMENT
MEDIUM

### TIMEFRAME
3 minutes

### REASONING
Strong bounce off EMA21."""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings():
    return Settings(ANTHROPIC_API_KEY="test-key", ANALYSIS_FUNCTION_PATH=PATH, MAX_IMAGE_BYTES=1024)


@pytest.fixture
def mock_vision():
    vision = MagicMock()
    vision.analyze = AsyncMock(return_value=MODEL_TEXT)
    return vision


@pytest.fixture
def mock_auth():
    auth = MagicMock()
    auth.get_user_id = AsyncMock(return_value="user-1")
    return auth


@pytest.fixture
def client(settings, mock_vision, mock_auth):
    app = create_app(settings, vision_client=mock_vision, auth_verifier=mock_auth)
    return TestClient(app)


def _post(client, body, token="token-1"):
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    return client.post(PATH, json=body, headers=headers)


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


class TestAnalyzeScreenshot:
    def test_success(self, client, mock_vision, mock_auth):
        response = _post(client, {"imageData": IMAGE})

        assert response.status_code == 200
        analysis = response.json()["analysis"]
        assert analysis["type"] == "BUY"
        assert analysis["confidence"] == 85
        assert analysis["content"] == MODEL_TEXT
        assert analysis["details"]["entryPoint"] == "174.90 (current market price)"
        assert analysis["details"]["stopLoss"] == "174.40"
        mock_auth.get_user_id.assert_awaited_once_with("token-1")
        mock_vision.analyze.assert_awaited_once_with(IMAGE)

    def test_missing_authorization(self, client, mock_vision):
        response = _post(client, {"imageData": IMAGE}, token=None)
        assert response.status_code == 401
        assert response.json() == {"error": "Missing Authorization header"}
        mock_vision.analyze.assert_not_awaited()

    def test_rejected_token(self, client, mock_auth, mock_vision):
        mock_auth.get_user_id.side_effect = NotAuthenticatedError("Unauthorized")
        response = _post(client, {"imageData": IMAGE}, token="bad")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        mock_vision.analyze.assert_not_awaited()

    @pytest.mark.parametrize("body", [{}, {"imageData": ""}, {"imageData": 42}, ["x"]])
    def test_invalid_image_data(self, client, body):
        response = _post(client, body)
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid image data"}

    def test_unparsable_body(self, client):
        response = client.post(PATH, content=b"not json", headers={"Authorization": "Bearer t"})
        assert response.status_code == 400
        assert response.json() == {"error": "Invalid image data"}

    def test_invalid_format(self, client):
        response = _post(client, {"imageData": "data:image/bmp;base64,AAAA"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid image format")

    def test_too_large(self, client, mock_vision):
        response = _post(client, {"imageData": "data:image/png;base64," + "A" * 2000})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Image too large")
        mock_vision.analyze.assert_not_awaited()

    def test_vision_failure(self, client, mock_vision):
        mock_vision.analyze.side_effect = VisionServiceError("Failed to analyze screenshot")
        response = _post(client, {"imageData": IMAGE})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to analyze screenshot"}

    def test_platform_unavailable(self, client, mock_auth):
        mock_auth.get_user_id.side_effect = TransportError("Failed to reach backend")
        response = _post(client, {"imageData": IMAGE})
        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}

    def test_health(self, client):
        assert client.get("/health").json() == {"ok": True}


# ---------------------------------------------------------------------------
# build_analysis_payload()
# ---------------------------------------------------------------------------


class TestBuildAnalysisPayload:
    def test_fields(self):
        payload = build_analysis_payload(MODEL_TEXT)
        assert payload["type"] == "BUY"
        assert payload["confidence"] == 85
        assert payload["details"]["targetPrice"] == "175.30"
        assert payload["details"]["riskLevel"] == "MEDIUM"
        assert payload["details"]["timeframe"] == "3 minutes"
        assert payload["details"]["reasoning"] == "Strong bounce off EMA21."

    def test_missing_confidence_left_to_client(self):
        assert build_analysis_payload("BUY now")["confidence"] is None

    def test_non_numeric_confidence_left_to_client(self):
        assert build_analysis_payload("### CONFIDENCE\nhigh")["confidence"] is None

    def test_confidence_phrase(self):
        assert build_analysis_payload("I have 85% confidence in a BUY here.")["confidence"] == 85

    def test_confidence_with_trailing_text(self):
        assert build_analysis_payload("### CONFIDENCE\n85% (strong)")["confidence"] == 85

    def test_degenerate_text(self):
        payload = build_analysis_payload("")
        assert payload["type"] == ""
        assert all(value == "" for value in payload["details"].values())


# ---------------------------------------------------------------------------
# Server payload through the client parser
# ---------------------------------------------------------------------------


class TestPayloadRoundTrip:
    def test_full_answer(self):
        result = parse_analysis(build_analysis_payload(MODEL_TEXT))
        assert result.type == "BUY Signal"
        assert result.confidence == 85
        assert result.entry_point == "174.90 (current market price)"
        assert result.risk_level == "MEDIUM"

    def test_confidence_phrase_survives(self):
        text = "The EMA bounce looks clean. I have 85% confidence in a BUY here."
        assert parse_analysis(build_analysis_payload(text)).confidence == 85

    def test_no_confidence_uses_client_default(self):
        result = parse_analysis(build_analysis_payload("### SIGNAL TYPE\nSELL\n### ENTRY POINT\n100"))
        assert result.confidence == DEFAULT_CONFIDENCE
        assert result.type == "SELL Signal"
        assert result.entry_point == "100"
