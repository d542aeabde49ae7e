"""chatrelay - streaming chat completion relay for bring-your-own-key clients."""

__version__ = "0.1.0"
