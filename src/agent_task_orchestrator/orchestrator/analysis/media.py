"""Image captioning."""

from __future__ import annotations

import logging

import openai
from pydantic import BaseModel, Field, ValidationError, field_validator

from agent_task_orchestrator.llm.provider import LLMProvider
from agent_task_orchestrator.orchestrator.analysis.parsing import AnalysisError, extract_json

logger = logging.getLogger(__name__)

IMAGE_PROMPT = """Analyze the image and return ONLY a JSON object matching this exact schema:

{
  "caption": "string",
  "hashtags": ["string"],
  "description": "string",
  "mood": "string",
  "colors": ["string"],
  "objects": ["string"],
  "setting": "string"
}

Return only valid JSON without any markdown formatting or code blocks."""


class ImageAnalysis(BaseModel):
    caption: str = Field(min_length=1)
    hashtags: list[str]
    description: str
    mood: str
    colors: list[str]
    objects: list[str]
    setting: str

    @field_validator("hashtags")
    @classmethod
    def _strip_hash(cls, value: list[str]) -> list[str]:
        tags = (t.strip().lstrip("#").strip() for t in value)
        return [t for t in tags if t]


class ImageCaptioner:
    """Caption an image with a vision model. Invalid output raises `AnalysisError`."""

    def __init__(self, provider: LLMProvider, *, max_tokens: int = 1000) -> None:
        self.provider = provider
        self.max_tokens = max_tokens

    def caption(self, image: bytes, mime_type: str = "image/jpeg") -> ImageAnalysis:
        if not image:
            raise AnalysisError("image content is empty")
        if not mime_type.startswith("image/"):
            raise AnalysisError(f"not an image: {mime_type}")

        try:
            text = self.provider.describe_image(
                IMAGE_PROMPT, image, mime_type, max_tokens=self.max_tokens
            )
        except openai.OpenAIError as e:
            raise AnalysisError(f"vision model call failed: {e}") from e

        try:
            return ImageAnalysis.model_validate(extract_json(text))
        except ValidationError as e:
            raise AnalysisError(f"image analysis did not match the expected schema: {e}") from e
        except ValueError as e:
            raise AnalysisError(str(e)) from e
