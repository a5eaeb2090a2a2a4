"""Python client for the ollachat streaming API."""

from ollachat.client.consumer import ChatStreamConsumer, ExchangeState
from ollachat.client.session import ConversationSession, LocalTurn

__all__ = ["ChatStreamConsumer", "ConversationSession", "ExchangeState", "LocalTurn"]
