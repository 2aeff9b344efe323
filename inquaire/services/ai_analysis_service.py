import asyncio
import json
import time
from dataclasses import asdict, dataclass, field
from typing import Optional

from inquaire.config import Settings
from inquaire.logging_config import get_logger
from inquaire.models.enums import IndustryType, Sentiment, Urgency
from inquaire.services.circuit_breaker import BreakerOptions, CircuitBreaker, CircuitOpenError
from inquaire.services.llm.base import LLMProvider, LLMProviderError
from inquaire.services.llm.openai_provider import OpenAIProvider

logger = get_logger("ai_analysis")

DEFAULT_INQUIRY_TYPE = "general inquiry"
FALLBACK_REPLY = "Thank you for your inquiry. A member of our staff will review it and get back to you shortly."
SUMMARY_FALLBACK_LENGTH = 100

MEDICAL_INDUSTRIES = {
    IndustryType.HOSPITAL.value,
    IndustryType.DENTAL.value,
    IndustryType.DERMATOLOGY.value,
    IndustryType.PLASTIC_SURGERY.value,
}

_RESPONSE_FIELDS = """- sentiment: positive, neutral or negative
- urgency: high, medium or low
- suggested_reply: a friendly, professional reply of one or two sentences
- confidence: a number between 0 and 1

Respond with a single valid JSON object."""

MEDICAL_SYSTEM_PROMPT = f"""You are a customer consultation assistant for a medical clinic.
Analyse the customer's inquiry and return structured information as JSON with these keys:
- type: booking inquiry, price inquiry, treatment inquiry or general inquiry
- summary: one or two sentence summary of the inquiry
- extracted_info: {{desired_date (YYYY-MM-DD), desired_time (morning/afternoon/evening), treatment_name,
  concern, customer_name, contact, age, additional_info}}
{_RESPONSE_FIELDS}"""

REAL_ESTATE_SYSTEM_PROMPT = f"""You are a customer consultation assistant for a real estate agency.
Analyse the customer's inquiry and return structured information as JSON with these keys:
- type: listing inquiry, price inquiry, viewing appointment or general inquiry
- summary: one or two sentence summary of the inquiry
- extracted_info: {{property_type, location, budget, desired_date, rooms, customer_name, contact,
  additional_requirements}}
{_RESPONSE_FIELDS}"""

GENERIC_SYSTEM_PROMPT = f"""You are a customer consultation assistant for a business.
Analyse the customer's inquiry and return structured information as JSON with these keys:
- type: the kind of inquiry
- summary: one or two sentence summary of the inquiry
- extracted_info: an object with the key facts from the message
{_RESPONSE_FIELDS}"""

_SENTIMENTS = {s.value for s in Sentiment}
_URGENCIES = {u.value for u in Urgency}


class AnalysisParseError(LLMProviderError):
    pass


@dataclass
class InquiryAnalysis:
    type: str
    summary: str
    sentiment: str
    urgency: str
    suggested_reply: str
    confidence: float
    extracted_info: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class AnalysisOutcome:
    analysis: InquiryAnalysis
    model: str
    processing_time_ms: int
    degraded: bool = False
    error: Optional[str] = None


def get_system_prompt(industry_type: Optional[str], override: Optional[str] = None) -> str:
    if override and override.strip():
        return override
    if industry_type in MEDICAL_INDUSTRIES:
        return MEDICAL_SYSTEM_PROMPT
    if industry_type == IndustryType.REAL_ESTATE.value:
        return REAL_ESTATE_SYSTEM_PROMPT
    return GENERIC_SYSTEM_PROMPT


def fallback_analysis(message_text: str) -> InquiryAnalysis:
    """Conservative analysis used whenever the AI provider is unavailable."""
    return InquiryAnalysis(
        type=DEFAULT_INQUIRY_TYPE,
        summary=message_text[:SUMMARY_FALLBACK_LENGTH],
        sentiment=Sentiment.NEUTRAL.value,
        urgency=Urgency.MEDIUM.value,
        suggested_reply=FALLBACK_REPLY,
        confidence=0.5,
        extracted_info={},
    )


def _coerce_confidence(value) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.8
    return min(max(confidence, 0.0), 1.0)


def parse_analysis(content: str, message_text: str) -> InquiryAnalysis:
    if not content or not content.strip():
        raise AnalysisParseError("AI provider returned empty content")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AnalysisParseError(f"AI provider returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise AnalysisParseError("AI provider returned a non-object JSON value")

    sentiment = str(data.get("sentiment") or "").lower()
    urgency = str(data.get("urgency") or "").lower()
    extracted_info = data.get("extracted_info")
    return InquiryAnalysis(
        type=data.get("type") or DEFAULT_INQUIRY_TYPE,
        summary=data.get("summary") or message_text[:SUMMARY_FALLBACK_LENGTH],
        sentiment=sentiment if sentiment in _SENTIMENTS else Sentiment.NEUTRAL.value,
        urgency=urgency if urgency in _URGENCIES else Urgency.MEDIUM.value,
        suggested_reply=data.get("suggested_reply") or "",
        confidence=_coerce_confidence(data.get("confidence", 0.8)),
        extracted_info=extracted_info if isinstance(extracted_info, dict) else {},
    )


class InquiryAnalyzer:
    def __init__(
        self,
        provider: LLMProvider,
        breaker: CircuitBreaker,
        *,
        model: str = "gpt-4o-mini",
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ):
        self.provider = provider
        self.breaker = breaker
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _request_analysis(self, message_text: str, system_prompt: str) -> InquiryAnalysis:
        response = self.provider.generate(
            [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": message_text},
            ],
            model=self.model,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        return parse_analysis(response.content, message_text)

    async def analyze(
        self,
        message_text: str,
        *,
        industry_type: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> AnalysisOutcome:
        """Analyse an inquiry. Provider failures of any kind yield the fallback analysis."""
        started = time.monotonic()
        prompt = get_system_prompt(industry_type, system_prompt)
        try:
            analysis = await self.breaker.call(self._request_analysis, message_text, prompt)
        except CircuitOpenError as exc:
            return self._degraded(message_text, started, "circuit_open", exc)
        except asyncio.TimeoutError as exc:
            return self._degraded(message_text, started, "timeout", exc)
        except Exception as exc:
            return self._degraded(message_text, started, "provider_error", exc)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "AI analysis completed",
            extra={
                "context": {
                    "industry": industry_type,
                    "sentiment": analysis.sentiment,
                    "urgency": analysis.urgency,
                    "confidence": analysis.confidence,
                    "processing_time_ms": elapsed_ms,
                }
            },
        )
        return AnalysisOutcome(analysis=analysis, model=self.model, processing_time_ms=elapsed_ms)

    def _degraded(self, message_text: str, started: float, reason: str, exc: Exception) -> AnalysisOutcome:
        elapsed_ms = int((time.monotonic() - started) * 1000)
        error = f"{reason}: {exc}" if str(exc) else reason
        logger.warning(
            "AI analysis degraded, using fallback",
            extra={"context": {"reason": reason, "error": str(exc), "breaker": self.breaker.status()}},
        )
        return AnalysisOutcome(
            analysis=fallback_analysis(message_text),
            model=self.model,
            processing_time_ms=elapsed_ms,
            degraded=True,
            error=error,
        )


def build_analyzer(settings: Settings) -> InquiryAnalyzer:
    provider = OpenAIProvider(
        api_key=settings.openai_api_key or "",
        default_model=settings.openai_model,
        timeout_seconds=settings.ai_timeout_seconds,
    )
    breaker = CircuitBreaker(
        "openai",
        BreakerOptions(
            timeout_seconds=settings.ai_timeout_seconds,
            error_threshold_percentage=settings.ai_breaker_error_threshold_percentage,
            reset_timeout_seconds=settings.ai_breaker_reset_timeout_seconds,
            volume_threshold=settings.ai_breaker_volume_threshold,
            rolling_window_seconds=settings.ai_breaker_rolling_window_seconds,
        ),
    )
    return InquiryAnalyzer(
        provider,
        breaker,
        model=settings.openai_model,
        temperature=settings.ai_temperature,
        max_tokens=settings.ai_max_tokens,
    )
