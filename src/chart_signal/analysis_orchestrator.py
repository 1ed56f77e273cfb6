"""Analysis request lifecycle state machine."""

from __future__ import annotations

import asyncio
import enum
import random
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

from chart_signal.errors import (
    AnalysisInProgressError,
    ChartSignalError,
    MissingImageError,
    NotAuthenticatedError,
    OutcomeError,
    PreconditionError,
)
from chart_signal.models.stats import TradeOutcome, TradingStats
from chart_signal.progress import ProgressTicker
from chart_signal.response_parser import parse_analysis

if TYPE_CHECKING:
    from chart_signal.config import Settings
    from chart_signal.models.analysis import ParsedAnalysis
    from chart_signal.models.session import Session
    from chart_signal.platform_client import AnalysisClient, StatsClient

logger = structlog.get_logger()


class AnalysisState(enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    REQUESTING = "requesting"
    PARSING = "parsing"
    COMPLETE = "complete"
    ERROR = "error"


class ErrorCategory(enum.Enum):
    NO_IMAGE = "no_image"
    NOT_AUTHENTICATED = "not_authenticated"
    AUTHENTICATION = "authentication"
    INVALID_IMAGE = "invalid_image"
    RATE_LIMITED = "rate_limited"
    GENERIC = "generic"


ERROR_MESSAGES: dict[ErrorCategory, tuple[str, str]] = {
    ErrorCategory.NO_IMAGE: ("No Image", "Please upload an image first."),
    ErrorCategory.NOT_AUTHENTICATED: ("Authentication Required", "Please sign in to analyze images."),
    ErrorCategory.AUTHENTICATION: ("Analysis Failed", "Authentication error. Please sign in again."),
    ErrorCategory.INVALID_IMAGE: (
        "Analysis Failed",
        "Invalid image format. Please use JPEG, PNG, GIF, or WebP format, max 10MB.",
    ),
    ErrorCategory.RATE_LIMITED: ("Analysis Failed", "Too many requests. Please try again later."),
    ErrorCategory.GENERIC: ("Analysis Failed", "Analysis failed. Please try again."),
}


class AnalysisFailure(BaseModel):
    category: ErrorCategory
    title: str
    message: str
    detail: str = ""


def classify_error(message: str) -> ErrorCategory:
    """Best-effort mapping of an opaque remote error message to a category."""
    low = message.lower()
    if "unauthorized" in low:
        return ErrorCategory.AUTHENTICATION
    if "invalid image" in low or "too large" in low:
        return ErrorCategory.INVALID_IMAGE
    if "rate limit" in low:
        return ErrorCategory.RATE_LIMITED
    return ErrorCategory.GENERIC


def _failure(category: ErrorCategory, detail: str = "") -> AnalysisFailure:
    title, message = ERROR_MESSAGES[category]
    return AnalysisFailure(category=category, title=title, message=message, detail=detail)


class AnalysisOrchestrator:
    """
    Drives one analysis at a time:

    IDLE -> VALIDATING -> REQUESTING -> PARSING -> COMPLETE
    VALIDATING / REQUESTING -> ERROR
    any -> IDLE on clear()
    """

    def __init__(
        self,
        settings: Settings,
        analysis_client: AnalysisClient,
        stats_client: StatsClient | None = None,
        session: Session | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.analysis_client = analysis_client
        self.stats_client = stats_client
        self.session = session
        self.state = AnalysisState.IDLE

        self.image_data: str | None = None
        self.result: ParsedAnalysis | None = None
        self.outcome: TradeOutcome | None = None
        self.error: AnalysisFailure | None = None
        self.stats: TradingStats | None = None

        self.rng = rng
        self.ticker = self._new_ticker()
        # Bumped by clear() so a response arriving afterwards is dropped
        self._cycle = 0

    @property
    def progress(self) -> float:
        return self.ticker.value

    @property
    def in_flight(self) -> bool:
        return self.state in (AnalysisState.REQUESTING, AnalysisState.PARSING)

    def _set_state(self, new_state: AnalysisState) -> None:
        """Update state with logging."""
        old = self.state
        self.state = new_state
        logger.info("state_transition", old=old.value, new=new_state.value)

    def set_image(self, image_data: str) -> None:
        """Store an uploaded or pasted image; discards the previous result."""
        if self.in_flight:
            raise AnalysisInProgressError("An analysis is already running")
        self.image_data = image_data
        self.result = None
        self.outcome = None
        self.error = None
        self.ticker.reset()
        if self.state != AnalysisState.IDLE:
            self._set_state(AnalysisState.IDLE)

    async def analyze(self, image_data: str | None = None) -> ParsedAnalysis | None:
        """
        Run one cycle with ``image_data`` or, for re-analysis, the stored image.

        Returns the parsed result, or None when the cycle ended in ERROR or a
        request was already in flight.
        """
        if self.in_flight:
            logger.warning("analysis_already_in_flight", state=self.state.value)
            return None

        if image_data:
            self.image_data = image_data
        self.result = None
        self.outcome = None
        self.error = None
        cycle = self._cycle

        # --- VALIDATING ---
        self._set_state(AnalysisState.VALIDATING)
        try:
            self._check_preconditions()
        except PreconditionError as e:
            category = (
                ErrorCategory.NO_IMAGE if isinstance(e, MissingImageError) else ErrorCategory.NOT_AUTHENTICATED
            )
            self._fail(_failure(category, str(e)))
            return None

        # --- REQUESTING ---
        self._set_state(AnalysisState.REQUESTING)
        self.ticker = ticker = self._new_ticker()
        try:
            async with ticker:
                payload = await self.analysis_client.analyze_image(self.image_data, self.session)
        except asyncio.CancelledError:
            if cycle == self._cycle:
                ticker.reset()
                logger.info("analysis_cancelled")
                self._set_state(AnalysisState.IDLE)
            raise
        except ChartSignalError as e:
            if cycle == self._cycle:
                ticker.reset()
                self._fail(_failure(classify_error(str(e)), str(e)))
            return None
        except Exception as e:
            logger.exception("analysis_unexpected_error")
            if cycle == self._cycle:
                ticker.reset()
                self._fail(_failure(ErrorCategory.GENERIC, str(e)))
            return None

        if cycle != self._cycle:
            logger.info("analysis_discarded_after_clear")
            return None
        ticker.finish()

        # --- PARSING ---
        self._set_state(AnalysisState.PARSING)
        result = parse_analysis(payload, default_confidence=self.settings.DEFAULT_CONFIDENCE)

        # --- COMPLETE ---
        self.result = result
        ticker.reset()
        self._set_state(AnalysisState.COMPLETE)
        logger.info(
            "analysis_completed",
            signal=result.type,
            confidence=result.confidence,
            entry_point=result.entry_point,
        )
        return result

    def clear(self) -> None:
        """Discard image, result and progress; back to IDLE unconditionally."""
        self._cycle += 1
        self.ticker.reset()
        self.image_data = None
        self.result = None
        self.outcome = None
        self.error = None
        self._set_state(AnalysisState.IDLE)

    def close(self) -> None:
        """Release the progress timer on teardown."""
        self.ticker.cancel()

    async def mark_outcome(self, is_win: bool) -> TradingStats:
        """Record win/loss for the current result. A result can be marked once."""
        if self.state != AnalysisState.COMPLETE or self.result is None:
            raise OutcomeError("No completed analysis to mark")
        if self.outcome is not None:
            raise OutcomeError(f"Trade result already saved: {self.outcome.label}")
        if self.session is None:
            raise NotAuthenticatedError()
        if self.stats_client is None:
            raise OutcomeError("No statistics backend configured")

        self.outcome = TradeOutcome(is_win=is_win)
        self.stats = await self.stats_client.record_outcome(self.session, is_win)
        logger.info("trade_outcome_marked", outcome=self.outcome.label, win_rate=self.stats.win_rate)
        return self.stats

    def _new_ticker(self) -> ProgressTicker:
        return ProgressTicker(
            tick_seconds=self.settings.PROGRESS_TICK_SECONDS,
            max_step=self.settings.PROGRESS_MAX_STEP,
            ceiling=self.settings.PROGRESS_CEILING,
            rng=self.rng,
        )

    def _check_preconditions(self) -> None:
        if self.session is None:
            raise NotAuthenticatedError()
        if not self.image_data:
            raise MissingImageError()

    def _fail(self, failure: AnalysisFailure) -> None:
        self.error = failure
        self._set_state(AnalysisState.ERROR)
        logger.warning(
            "analysis_failed",
            category=failure.category.value,
            message=failure.message,
            detail=failure.detail,
        )
