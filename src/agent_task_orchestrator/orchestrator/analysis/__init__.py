"""LLM-backed analysis routines used by the dispatch strategies."""

from agent_task_orchestrator.orchestrator.analysis.media import ImageAnalysis, ImageCaptioner
from agent_task_orchestrator.orchestrator.analysis.parsing import AnalysisError, extract_json
from agent_task_orchestrator.orchestrator.analysis.sentiment import (
    SENTIMENT_CATEGORIES,
    SentimentAnalysis,
    SentimentAnalyzer,
)

__all__ = [
    "SENTIMENT_CATEGORIES",
    "AnalysisError",
    "ImageAnalysis",
    "ImageCaptioner",
    "SentimentAnalysis",
    "SentimentAnalyzer",
    "extract_json",
]
