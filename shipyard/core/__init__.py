"""Core business logic modules."""

from shipyard.core.claude import ClaudeResult, ClaudeRunner
from shipyard.core.config import Config
from shipyard.core.prompts import PromptBuilder

__all__ = ["ClaudeResult", "ClaudeRunner", "Config", "PromptBuilder"]
