"""Suggestion engine adapters."""

from clinical_coding.adapters.suggestion.composite import CompositeSuggestionEngine
from clinical_coding.adapters.suggestion.http_engine import HttpSuggestionEngine
from clinical_coding.adapters.suggestion.rule_based import RuleBasedSuggestionEngine

__all__ = ["CompositeSuggestionEngine", "HttpSuggestionEngine", "RuleBasedSuggestionEngine"]
