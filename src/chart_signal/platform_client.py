"""httpx wrappers for the backend platform: auth, remote analysis, statistics."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from chart_signal.config import Settings
from chart_signal.errors import NotAuthenticatedError, SchemaError, TransportError
from chart_signal.models.session import Session
from chart_signal.models.stats import TradingStats

logger = structlog.get_logger()


class PlatformClient:
    """Shared request plumbing. No call made here is retried."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.settings.BACKEND_ANON_KEY:
            headers["apikey"] = self.settings.BACKEND_ANON_KEY
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        access_token: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request; network failures and non-2xx become TransportError."""
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.BACKEND_URL,
                timeout=self.settings.HTTP_TIMEOUT_SECONDS,
                transport=self.transport,
            ) as http:
                response = await http.request(method, path, headers=self._headers(access_token), **kwargs)
        except httpx.HTTPError as e:
            logger.warning("platform_transport_error", path=path, error=str(e))
            raise TransportError(f"Failed to reach backend: {e}") from e

        if response.is_success:
            return response

        message = _error_message(response)
        if response.status_code == 429 and "rate limit" not in message.lower():
            message = f"{message} (rate limit exceeded)"
        logger.warning("platform_http_error", path=path, status=response.status_code, error=message)
        raise TransportError(message, status_code=response.status_code)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "message", "msg"):
            if isinstance(body.get(key), str) and body[key]:
                return body[key]
    return response.text.strip() or f"HTTP {response.status_code}"


class AuthVerifier(PlatformClient):
    async def get_user_id(self, access_token: str) -> str:
        """Resolve a bearer token to a user id via the platform's auth API."""
        try:
            response = await self._request("GET", "/auth/v1/user", access_token=access_token)
        except TransportError as e:
            if e.status_code in (401, 403):
                raise NotAuthenticatedError("Unauthorized") from e
            raise
        try:
            body = response.json()
        except ValueError:
            body = None
        user_id = body.get("id") if isinstance(body, dict) else None
        if not user_id:
            raise NotAuthenticatedError("Unauthorized")
        return user_id


class AnalysisClient(PlatformClient):
    async def analyze_image(self, image_data: str, session: Session) -> dict:
        """Invoke the remote analysis function and return its ``analysis`` payload."""
        response = await self._request(
            "POST",
            self.settings.ANALYSIS_FUNCTION_PATH,
            access_token=session.access_token,
            json={"imageData": image_data},
        )
        try:
            data = response.json()
        except ValueError as e:
            raise SchemaError("Invalid response from analysis service") from e

        analysis = data.get("analysis") if isinstance(data, dict) else None
        if not isinstance(analysis, dict):
            logger.warning("analysis_schema_error", body=response.text[:200])
            raise SchemaError("Invalid response from analysis service")
        return analysis


class StatsClient(PlatformClient):
    async def load(self, session: Session) -> TradingStats:
        """Current aggregates for the user; zeros when no row exists yet."""
        response = await self._request(
            "GET",
            "/rest/v1/user_trading_stats",
            access_token=session.access_token,
            params={
                "select": "total_trades,wins,losses,win_rate",
                "user_id": f"eq.{session.user_id}",
            },
        )
        try:
            rows = response.json()
        except ValueError as e:
            raise SchemaError("Invalid response from statistics service") from e
        if not isinstance(rows, list) or (rows and not isinstance(rows[0], dict)):
            logger.warning("stats_schema_error", body=response.text[:200])
            raise SchemaError("Invalid response from statistics service")
        if not rows:
            return TradingStats()
        row = rows[0]
        return TradingStats(
            total_trades=row.get("total_trades") or 0,
            wins=row.get("wins") or 0,
            losses=row.get("losses") or 0,
            win_rate=row.get("win_rate") or 0.0,
        )

    async def record_outcome(self, session: Session, is_win: bool) -> TradingStats:
        """Record one win/loss and return the refreshed aggregates."""
        await self._request(
            "POST",
            "/rest/v1/rpc/update_trading_stats",
            access_token=session.access_token,
            json={"p_user_id": session.user_id, "p_is_win": is_win},
        )
        stats = await self.load(session)
        logger.info(
            "trade_outcome_recorded",
            user_id=session.user_id,
            is_win=is_win,
            total=stats.total_trades,
            win_rate=stats.win_rate,
        )
        return stats
