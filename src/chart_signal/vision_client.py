"""Anthropic AsyncClient wrapper for chart screenshot analysis."""

from __future__ import annotations

import asyncio

import structlog
from anthropic import APIConnectionError, AsyncAnthropic
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from chart_signal.config import Settings
from chart_signal.errors import VisionServiceError
from chart_signal.image_input import split_data_url

logger = structlog.get_logger()

CHART_ANALYSIS_PROMPT = """You are a trading assistant giving short-term signals from an M5 chart screenshot.
First decide whether the market is trending, ranging or breaking out, then give a signal using the filtered rules below.

Always give a short three-part answer:
👉 BUY (CALL) or SELL (PUT)
➝ + a short reason (e.g. "EMA bounce, RSI above 50, strong green candle").
⏱ Recommended trade time (2-5 minutes).

---

### 1️⃣ Trend strategy - EMA + RSI bounce
- Trend direction from EMA9 vs EMA21.
- Entry: price bounced off EMA21, RSI follows the trend (above 50 = up, below 50 = down).
- Signal only if the bounce candle closes with a **larger body** than the previous one.

---

### 2️⃣ Range strategy - RSI bounce + Bollinger
- No clean EMA trend means ranging.
- Entry: price at a Bollinger edge, RSI below 30 or above 70, then returning to the middle.
- Signal only if RSI actually bounces (does not stay overbought/oversold).

---

### 3️⃣ Breakout strategy - Price action breakout
- Entry: a strong candle breaks a key level or the Bollinger band, RSI confirms the direction.
- Signal only if the breakout candle body is >70% of the whole candle (not just a wick).

---

### Timing rules (M5 chart)
- Weak signal → ⏱ 2 minutes
- Normal signal → ⏱ 3 minutes
- Strong signal (large body, RSI confirms) → ⏱ 5 minutes

Answer in EXACTLY this format:

### SIGNAL TYPE
BUY

### CONFIDENCE
85%

### ANALYSIS
- **Current price:** 174.85 (real price read from the chart)
- **EMA9:** 174.60 (green line)
- **EMA21:** 174.20 (red line)
- **RSI:** 58 (above 50, bullish)
- **Bollinger:** Near the middle band
- **Strategy:** Trend bounce
- **Candle body:** Large green body, confirms the signal
- **Market state:** Bullish trend EMA9 > EMA21

### ENTRY POINT
174.90 (current market price)

### TARGET PRICE
175.30 (next resistance)

### STOP LOSS
174.40 (below support)

### RISK ASSESSMENT
MEDIUM - Clean trend, but watch the resistance

### TIMEFRAME
3 minutes (normal signal strength)

### REASONING
Strong bounce off EMA21, RSI above 50 confirms the bullish trend. The large green candle body shows strong buying pressure. A 3 minute trade is recommended because the signal is clean.

IMPORTANT: Always give a BUY or SELL recommendation. Never answer with "ANALYSIS" only or general advice. Be specific about what is visible on the chart."""


class VisionClient:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def analyze(self, image_data: str) -> str:
        """Send the chart image with the fixed prompt; return the raw answer text."""
        if not self.settings.ANTHROPIC_API_KEY:
            raise VisionServiceError("Vision API key not configured")

        try:
            response = await asyncio.wait_for(
                self._call_api(image_data),
                timeout=self.settings.MAX_VISION_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError as e:
            logger.warning("vision_timeout", timeout=self.settings.MAX_VISION_TIMEOUT_SECONDS)
            raise VisionServiceError("Failed to analyze screenshot") from e
        except Exception as e:
            logger.warning("vision_error", error=str(e))
            raise VisionServiceError("Failed to analyze screenshot") from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        if not text.strip():
            logger.warning("vision_empty_response", stop_reason=getattr(response, "stop_reason", None))
            raise VisionServiceError("Invalid response from AI service")

        logger.info("vision_call", model=self.settings.VISION_MODEL, chars=len(text))
        return text

    @retry(
        retry=retry_if_exception_type(APIConnectionError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _call_api(self, image_data: str):
        """Low-level Anthropic API call, retried on connection errors only."""
        media_type, body = split_data_url(image_data)
        client = AsyncAnthropic(api_key=self.settings.ANTHROPIC_API_KEY)
        return await client.messages.create(
            model=self.settings.VISION_MODEL,
            max_tokens=self.settings.VISION_MAX_TOKENS,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": CHART_ANALYSIS_PROMPT},
                        {
                            "type": "image",
                            "source": {"type": "base64", "media_type": media_type, "data": body},
                        },
                    ],
                }
            ],
        )
