"""Email sentiment classification."""

from __future__ import annotations

import logging

import openai
from pydantic import BaseModel, Field, ValidationError, field_validator

from agent_task_orchestrator.llm.provider import LLMProvider
from agent_task_orchestrator.orchestrator.analysis.parsing import AnalysisError, extract_json

logger = logging.getLogger(__name__)

SENTIMENT_CATEGORIES: tuple[str, ...] = (
    "positive",
    "grateful",
    "suggestive",
    "constructive",
    "excited",
    "optimistic",
    "disappointed",
    "frustrated",
    "negative",
    "critical",
    "urgent",
    "demanding",
    "neutral",
    "mixed",
    "cautious",
    "concerned",
    "appreciative",
)

FALLBACK_CATEGORY = "neutral"
FALLBACK_CONFIDENCE = 0.5


class SentimentAnalysis(BaseModel):
    sentiment_category: str
    confidence_score: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    key_emotions: list[str] = Field(default_factory=list)
    tone_indicators: list[str] = Field(default_factory=list)
    category_description: str = ""
    fallback: bool = False

    @field_validator("sentiment_category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in SENTIMENT_CATEGORIES:
            raise ValueError(f"unknown sentiment category: {value!r}")
        return normalized

    @classmethod
    def neutral_fallback(cls, reason: str) -> SentimentAnalysis:
        return cls(
            sentiment_category=FALLBACK_CATEGORY,
            confidence_score=FALLBACK_CONFIDENCE,
            reasoning=reason,
            key_emotions=["uncertain"],
            tone_indicators=["unclear"],
            fallback=True,
        )


def build_prompt(content: str, subject: str | None, sender: str | None) -> str:
    categories = "\n".join(f"- {c}" for c in SENTIMENT_CATEGORIES)
    return (
        "Analyze the sentiment and emotional tone of this email and categorize it into "
        "one of these FIXED categories:\n\n"
        f"AVAILABLE CATEGORIES:\n{categories}\n\n"
        f"Subject: {subject or 'No subject'}\n"
        f"From: {sender or 'Unknown sender'}\n\n"
        f"Content:\n{content}\n\n"
        "Choose the MOST APPROPRIATE category from the list above. Respond with a valid "
        "JSON object in this exact format:\n"
        "{\n"
        '  "sentiment_category": "one_of_the_categories_above",\n'
        '  "confidence_score": 0.85,\n'
        '  "reasoning": "Brief explanation of why you chose this specific category",\n'
        '  "key_emotions": ["emotion1", "emotion2"],\n'
        '  "tone_indicators": ["indicator1", "indicator2"],\n'
        '  "category_description": "Brief description of what this category represents"\n'
        "}\n\n"
        "IMPORTANT: The sentiment_category MUST be exactly one of the categories listed "
        "above (lowercase, no spaces)."
    )


class SentimentAnalyzer:
    """Classify an email into one of `SENTIMENT_CATEGORIES`.

    Unparseable or out-of-vocabulary model output degrades to a neutral analysis
    with confidence 0.5. Provider failures raise `AnalysisError`.
    """

    def __init__(self, provider: LLMProvider, *, max_tokens: int = 1000) -> None:
        self.provider = provider
        self.max_tokens = max_tokens

    def analyze(
        self, content: str, *, subject: str | None = None, sender: str | None = None
    ) -> SentimentAnalysis:
        if not content.strip():
            raise AnalysisError("email content is required")

        try:
            text = self.provider.generate(
                build_prompt(content, subject, sender), max_tokens=self.max_tokens
            )
        except openai.OpenAIError as e:
            raise AnalysisError(f"sentiment model call failed: {e}") from e

        try:
            return SentimentAnalysis.model_validate(extract_json(text))
        except ValueError as e:
            # pydantic's ValidationError is a ValueError as well.
            reason = (
                "Invalid AI response structure, using fallback analysis"
                if isinstance(e, ValidationError)
                else "Unable to parse AI response, using fallback analysis"
            )
            logger.warning("Sentiment output unusable; using fallback", extra={"error": str(e)})
            return SentimentAnalysis.neutral_fallback(reason)
