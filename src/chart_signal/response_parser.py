"""Regex extraction of labeled fields from free-form vision model text.

Every function here is total: degenerate input yields empty strings or the
documented defaults, never an exception.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from chart_signal.models.analysis import (
    BUY_SIGNAL,
    SELL_SIGNAL,
    AnalysisDetails,
    ParsedAnalysis,
)

logger = structlog.get_logger()

DEFAULT_CONFIDENCE = 75
MIN_BULLET_LENGTH = 10
MAX_BULLETS = 8
MIN_SENTENCE_LENGTH = 20
MAX_FALLBACK_SENTENCES = 6
MIN_PARAGRAPH_LENGTH = 20
MIN_SUMMARY_SENTENCE_LENGTH = 10

_BULLET_GLYPHS = ("-", "*", "•")


def _label_pattern(field_name: str) -> str:
    """Escape a label, letting the words inside it be separated by any whitespace."""
    return r"\s*".join(re.escape(word) for word in field_name.split())


@dataclass(frozen=True)
class FieldRule:
    name: str
    build: Callable[[str], str]

    def match(self, text: str, field_name: str) -> str:
        found = re.search(self.build(_label_pattern(field_name)), text, re.IGNORECASE)
        if found is None:
            return ""
        return _clean(found.group(1))


# Priority order matters: the first rule yielding a non-empty value wins.
FIELD_RULES: tuple[FieldRule, ...] = (
    FieldRule("section_header", lambda label: rf"###\s*{label}[:\s]*([^#\n]+)"),
    FieldRule("emphasized_label", lambda label: rf"\*\*{label}\*\*[: \t]*([^\n]+)"),
    FieldRule("bare_label", lambda label: rf"{label}[: \t]*([^\n]+)"),
)

# English label first, then the Hungarian variant, then the emoji shorthand.
FIELD_LABELS: dict[str, tuple[str, ...]] = {
    "entry_point": ("ENTRY POINT", "BELÉPÉSI PONT"),
    "target_price": ("TARGET PRICE", "CÉL ÁR"),
    "stop_loss": ("STOP LOSS",),
    "risk_level": ("RISK ASSESSMENT", "KOCKÁZAT"),
    "timeframe": ("TIMEFRAME", "IDŐKERET", "⏱"),
    "reasoning": ("REASONING", "INDOKLÁS", "➝"),
}

SIGNAL_SECTION_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"###\s*SIGNAL\s*TYPE[:\s]*([^\n#]+)", re.IGNORECASE),
    re.compile(r"###\s*JELTÍPUS[:\s]*([^\n#]+)", re.IGNORECASE),
    re.compile(r"👉\s*([^\n]+)", re.IGNORECASE),
)

CONFIDENCE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"###\s*CONFIDENCE[:\s]*(\d+)%?", re.IGNORECASE),
    re.compile(r"###\s*MEGBÍZHATÓSÁG[:\s]*(\d+)%?", re.IGNORECASE),
    re.compile(r"(\d+)%\s*confidence", re.IGNORECASE),
)

_SELL_KEYWORDS = re.compile(r"SELL|PUT")
_BUY_KEYWORDS = re.compile(r"BUY|CALL")
_HEADING = re.compile(r"###[^#\n]*")


def _clean(value: str) -> str:
    """Strip whitespace and enclosing emphasis markers (and a leading emoji variation selector)."""
    return value.strip().lstrip("\ufe0f").strip().strip("*").strip()


def extract_field(text: str, field_name: str) -> str:
    """Return the value labeled ``field_name``, or "" when no rule matches."""
    if not text or not field_name.strip():
        return ""
    for rule in FIELD_RULES:
        value = rule.match(text, field_name)
        if value:
            return value
    return ""


def extract_first(text: str, field_names: tuple[str, ...]) -> str:
    """Try each label variant in order, returning the first non-empty value."""
    for field_name in field_names:
        value = extract_field(text, field_name)
        if value:
            return value
    return ""


def classify_signal(text: str) -> str:
    """
    Decide between the buy-side and sell-side label.

    A signal-type section is inspected when present. Otherwise directional
    keywords are counted over the whole text and the sell side wins only on a
    strictly higher count. This keyword count is a best-effort heuristic:
    words such as INPUT or TECHNICALLY also count.
    """
    if not text:
        return BUY_SIGNAL

    for pattern in SIGNAL_SECTION_PATTERNS:
        found = pattern.search(text)
        if found is None:
            continue
        signal_text = found.group(1).strip().upper()
        if "SELL" in signal_text or "PUT" in signal_text:
            return SELL_SIGNAL
        return BUY_SIGNAL

    upper = text.upper()
    sell_count = len(_SELL_KEYWORDS.findall(upper))
    buy_count = len(_BUY_KEYWORDS.findall(upper))
    if sell_count > buy_count:
        return SELL_SIGNAL
    return BUY_SIGNAL


def extract_confidence(text: str, default: int = DEFAULT_CONFIDENCE) -> int:
    """Integer percentage from a confidence section or phrase; zero counts as absent."""
    if not text:
        return default
    for pattern in CONFIDENCE_PATTERNS:
        found = pattern.search(text)
        if found is None:
            continue
        return int(found.group(1)) or default
    return default


def extract_detail_bullets(text: str) -> list[str]:
    """Collect bulleted lines per ``###`` section, falling back to sentences."""
    if not text:
        return []

    details: list[str] = []
    for section in text.split("###"):
        if not section.strip():
            continue
        lines = [line.strip() for line in section.split("\n") if line.strip()]
        # First line of a section is its heading
        for line in lines[1:]:
            if not line.startswith(_BULLET_GLYPHS):
                continue
            clean = re.sub(r"^[-*•]\s*", "", line).replace("**", "")
            clean = _clean(clean)
            if len(clean) > MIN_BULLET_LENGTH:
                details.append(clean)

    if not details:
        sentences = [s.strip() for s in text.split(".") if len(s.strip()) > MIN_SENTENCE_LENGTH]
        return sentences[:MAX_FALLBACK_SENTENCES]

    return details[:MAX_BULLETS]


def extract_main_content(text: str) -> str:
    """First substantial paragraph without headings, else the first two sentences."""
    if not text:
        return ""

    paragraphs = [p for p in text.split("\n\n") if len(p.strip()) > MIN_PARAGRAPH_LENGTH]
    if paragraphs:
        return _HEADING.sub("", paragraphs[0]).strip()

    sentences = [s.strip() for s in text.split(".") if len(s.strip()) > MIN_SUMMARY_SENTENCE_LENGTH]
    if not sentences:
        return text.strip()
    return ". ".join(sentences[:2]) + "."


def _coerce_details(raw: Any) -> AnalysisDetails:
    """Drop empty or non-scalar entries so validation cannot fail."""
    if not isinstance(raw, Mapping):
        return AnalysisDetails()
    cleaned = {
        key: str(value).strip()
        for key, value in raw.items()
        if isinstance(key, str) and isinstance(value, (str, int, float)) and str(value).strip()
    }
    return AnalysisDetails.model_validate(cleaned)


def _coerce_confidence(raw: Any) -> int | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
        return None
    value = int(raw)
    if 0 < value <= 100:
        return value
    return None


def parse_analysis(payload: Mapping[str, Any], default_confidence: int = DEFAULT_CONFIDENCE) -> ParsedAnalysis:
    """
    Build a ParsedAnalysis from a remote analysis payload.

    Values already present in ``payload["details"]`` and a usable numeric
    ``payload["confidence"]`` take precedence over what the regex rules find
    in ``payload["content"]``.
    """
    content = payload.get("content") or ""
    if not isinstance(content, str):
        content = str(content)
    details = _coerce_details(payload.get("details"))

    fields = {}
    for name, labels in FIELD_LABELS.items():
        fields[name] = getattr(details, name) or extract_first(content, labels)

    confidence = _coerce_confidence(payload.get("confidence"))
    if confidence is None:
        confidence = extract_confidence(content, default=default_confidence)

    result = ParsedAnalysis(
        type=classify_signal(content),
        content=extract_main_content(content),
        confidence=confidence,
        details=extract_detail_bullets(content),
        **fields,
    )
    logger.debug(
        "analysis_parsed",
        signal=result.type,
        confidence=result.confidence,
        bullets=len(result.details),
        raw_text=content[:200],
    )
    return result
