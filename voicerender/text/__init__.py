"""Script annotation and chunking components.

This package turns raw narration scripts into speech markup and bounded chunks.
Stages that depend on model capabilities (`sanitizer`, `cues`, `annotate`,
`chunking`) are imported from their modules directly.
"""

from .conversational import ConversationalRealism, analyze_conversational_realism
from .macros import MacroProcessor, estimate_duration
from .markup import MarkupConverter
from .normalizer import TextNormalizer
from .rules import VoiceRules

__all__ = [
    "ConversationalRealism",
    "MacroProcessor",
    "MarkupConverter",
    "TextNormalizer",
    "VoiceRules",
    "analyze_conversational_realism",
    "estimate_duration",
]
