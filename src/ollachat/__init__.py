"""ollachat - streaming chat front end for locally hosted Ollama models."""

__version__ = "0.1.0"
