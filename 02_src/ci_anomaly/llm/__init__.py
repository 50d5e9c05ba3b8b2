"""LLM module."""

from .analysis_client import AnalysisClient, build_turns, clean_json_string, order_chronologically
from .llm_provider import ILLMProvider, LLMProvider

__all__ = [
    "AnalysisClient",
    "ILLMProvider",
    "LLMProvider",
    "build_turns",
    "clean_json_string",
    "order_chronologically",
]
