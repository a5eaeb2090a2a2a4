"""Inference backend access."""

from ollachat.llm.gateway import OllamaGateway, TokenStream, get_gateway, reset_gateway
from ollachat.llm.messages import prepare_backend_messages, turns_to_messages, wire_message

__all__ = [
    "OllamaGateway",
    "TokenStream",
    "get_gateway",
    "reset_gateway",
    "prepare_backend_messages",
    "turns_to_messages",
    "wire_message",
]
