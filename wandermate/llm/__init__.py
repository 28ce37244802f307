# llm/__init__.py
"""
LLM Components Package

Contains intent resolution:
- intent_parser: Parse natural language to structured intents
  (rule-based classifier, optional OpenAI classifier)
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .intent_parser import (
        IntentParser,
        ResolveContext,
        RuleBasedClassifier,
        OpenAIIntentClassifier,
        create_classifier
    )

__all__ = [
    "IntentParser",
    "ResolveContext",
    "RuleBasedClassifier",
    "OpenAIIntentClassifier",
    "create_classifier"
]
