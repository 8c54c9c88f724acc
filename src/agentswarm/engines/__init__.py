from .base import ChatTransport, CompletionRequest
from .openai import OpenAITransport
from .streaming import StreamAssembler

__all__ = ["ChatTransport",
           "CompletionRequest",
           "OpenAITransport",
           "StreamAssembler"]
