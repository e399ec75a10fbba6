"""Client helpers for Parley."""

from parley.clients.chat import ChatClient
from parley.clients.demux import ChunkEvent, DemuxEvent, DoneEvent, ModelListEvent, ResponseDemultiplexer
from parley.clients.request import RequestBuilder

__all__ = [
    "ChatClient",
    "ChunkEvent",
    "DemuxEvent",
    "DoneEvent",
    "ModelListEvent",
    "RequestBuilder",
    "ResponseDemultiplexer",
]
