"""Parley public API."""

from parley.__about__ import __version__
from parley.clients import ChatClient, RequestBuilder, ResponseDemultiplexer
from parley.conversation import (
    ContentMerge,
    ConversationStore,
    InMemoryConversationStore,
    Message,
    MessageAggregator,
    Role,
    ToolCall,
    ToolCallMerger,
)
from parley.core import (
    AuthScheme,
    Connection,
    ErrorKind,
    ErrorPayload,
    ExchangeResult,
    ParleyError,
    StreamEvent,
    instrument_parley,
)
from parley.models import ModelEntry, ModelRegistry
from parley.session import ChatSession
from parley.tools import (
    ExchangeState,
    RegistryToolExecutor,
    Tool,
    ToolExecutor,
    ToolKind,
    ToolOption,
    ToolOrchestrator,
    ToolRegistry,
    tool,
)

__all__ = [
    "AuthScheme",
    "ChatClient",
    "ChatSession",
    "Connection",
    "ContentMerge",
    "ConversationStore",
    "ErrorKind",
    "ErrorPayload",
    "ExchangeResult",
    "ExchangeState",
    "InMemoryConversationStore",
    "Message",
    "MessageAggregator",
    "ModelEntry",
    "ModelRegistry",
    "ParleyError",
    "RegistryToolExecutor",
    "RequestBuilder",
    "ResponseDemultiplexer",
    "Role",
    "StreamEvent",
    "Tool",
    "ToolCall",
    "ToolCallMerger",
    "ToolExecutor",
    "ToolKind",
    "ToolOption",
    "ToolOrchestrator",
    "ToolRegistry",
    "__version__",
    "instrument_parley",
    "tool",
]
