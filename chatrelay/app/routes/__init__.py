"""chatrelay Routes Package.

This package contains all route handlers:

- chat: Streaming chat completion relay
- health: Health check and monitoring endpoints
"""
from chatrelay.app.routes import chat, health

__all__ = ["chat", "health"]
