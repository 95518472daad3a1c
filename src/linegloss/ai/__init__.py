"""Chat client, prompts and the summarization service."""

from .client import AIClient, ClientSettings
from .summarizer import SemanticUnitSummarizer, parse_unit_response

__all__ = ["AIClient", "ClientSettings", "SemanticUnitSummarizer", "parse_unit_response"]
