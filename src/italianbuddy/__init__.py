"""ItalianBuddy: AI conversation partner and spaced-repetition vocabulary for language learners."""

__version__ = "0.1.0"

from .ai import AnthropicProvider, ChatProvider, ConversationAgent, OpenAIProvider, select_provider
from .config import AgentConfig
from .core import ReviewScheduler, VocabularyItem
from .database import BuddyDatabase
from .parsing import extract_structured_block, parse_response
from .service import BuddyService

__all__ = [
    "AgentConfig",
    "AnthropicProvider",
    "BuddyDatabase",
    "BuddyService",
    "ChatProvider",
    "ConversationAgent",
    "OpenAIProvider",
    "ReviewScheduler",
    "VocabularyItem",
    "extract_structured_block",
    "parse_response",
    "select_provider",
]
