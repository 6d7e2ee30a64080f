"""Reasoning engine client, tools and the agent loop."""

from .ai_types import EngineResponse, Message, StopReason, TextBlock, ToolInvocation, ToolOutcome
from .client import ClientSettings, CommunicationError, ReasoningClient

__all__ = [
    "ClientSettings",
    "CommunicationError",
    "EngineResponse",
    "Message",
    "ReasoningClient",
    "StopReason",
    "TextBlock",
    "ToolInvocation",
    "ToolOutcome",
]
