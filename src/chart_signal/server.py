"""FastAPI service: authenticated chart screenshot analysis endpoint."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chart_signal.config import Settings
from chart_signal.errors import (
    InvalidImageError,
    NotAuthenticatedError,
    TransportError,
    VisionServiceError,
)
from chart_signal.image_input import validate_image_data
from chart_signal.platform_client import AuthVerifier
from chart_signal.response_parser import extract_confidence, extract_field
from chart_signal.vision_client import VisionClient

logger = structlog.get_logger()

DETAIL_FIELDS = {
    "entryPoint": "ENTRY POINT",
    "targetPrice": "TARGET PRICE",
    "stopLoss": "STOP LOSS",
    "riskLevel": "RISK ASSESSMENT",
    "timeframe": "TIMEFRAME",
    "reasoning": "REASONING",
    "analysis": "ANALYSIS",
}


def build_analysis_payload(text: str) -> dict:
    """
    Shape raw model text into the ``analysis`` object returned to clients.

    ``confidence`` is None when the text states no percentage, leaving the
    default to the client.
    """
    confidence = extract_confidence(text, default=0) or None

    return {
        "type": extract_field(text, "SIGNAL TYPE"),
        "content": text,
        "confidence": confidence,
        "details": {key: extract_field(text, label) for key, label in DETAIL_FIELDS.items()},
    }


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message})


def create_app(
    settings: Settings | None = None,
    vision_client: VisionClient | None = None,
    auth_verifier: AuthVerifier | None = None,
) -> FastAPI:
    settings = settings or Settings()
    vision_client = vision_client or VisionClient(settings)
    auth_verifier = auth_verifier or AuthVerifier(settings)

    app = FastAPI(title="Chart Signal API")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.exception_handler(TransportError)
    async def platform_unavailable(request: Request, exc: TransportError):
        logger.warning("platform_unavailable", error=str(exc))
        return _error(500, "Internal server error")

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.post(settings.ANALYSIS_FUNCTION_PATH)
    async def analyze_screenshot(request: Request):
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return _error(401, "Missing Authorization header")

        token = auth_header.removeprefix("Bearer ").strip()
        try:
            user_id = await auth_verifier.get_user_id(token)
        except NotAuthenticatedError:
            logger.warning("analysis_auth_rejected")
            return _error(401, "Unauthorized")

        try:
            body = await request.json()
        except ValueError:
            body = None
        image_data = body.get("imageData") if isinstance(body, dict) else None
        if not image_data or not isinstance(image_data, str):
            return _error(400, "Invalid image data")

        try:
            validate_image_data(
                image_data,
                allowed_types=settings.ALLOWED_IMAGE_TYPES,
                max_bytes=settings.MAX_IMAGE_BYTES,
            )
        except InvalidImageError as e:
            return _error(400, str(e))

        logger.info("analysis_request", user_id=user_id, image_chars=len(image_data))
        try:
            text = await vision_client.analyze(image_data)
        except VisionServiceError as e:
            return _error(500, str(e))

        analysis = build_analysis_payload(text)
        logger.info(
            "analysis_served",
            user_id=user_id,
            signal=analysis["type"],
            confidence=analysis["confidence"],
        )
        return {"analysis": analysis}

    return app
