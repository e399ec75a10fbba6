"""Conversation state for Parley."""

from parley.conversation.aggregator import ContentMerge, MergeOutcome, MergeStatus, MessageAggregator, ToolCallMerger
from parley.conversation.message import Message, Role, ToolCall, ToolType
from parley.conversation.store import ConversationStore, InMemoryConversationStore

__all__ = [
    "ContentMerge",
    "ConversationStore",
    "InMemoryConversationStore",
    "MergeOutcome",
    "MergeStatus",
    "Message",
    "MessageAggregator",
    "Role",
    "ToolCall",
    "ToolCallMerger",
    "ToolType",
]
