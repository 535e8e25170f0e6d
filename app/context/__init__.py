"""Context management module for mode-aware chat context assembly.

This module provides:
- Message, part and conversation models
- Keyword and AI mode detection
- Attachment signal analysis
- Dynamic system prompt building
- Character budget trimming
- Client-side memory tiers (``app.context.context_manager``, imported directly)
"""

from app.context.models import (
    Conversation,
    ConversationSummary,
    IntentClassification,
    Message,
    MessagePart,
    Mode,
    ResearchPlan,
    ThinkingLevel,
    UserPreferences,
)

__all__ = [
    # Models
    "Conversation",
    "ConversationSummary",
    "IntentClassification",
    "Message",
    "MessagePart",
    "Mode",
    "ResearchPlan",
    "ThinkingLevel",
    "UserPreferences",
]
