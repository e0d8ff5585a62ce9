"""Interfaces del core.

- Protocols para los colaboradores del motor (sinks de mensajes, asistente).
- El dispatcher y los pollers publican y conversan solo a través de estos.
"""

from core.interfaces.collaborators import Assistant, MessageSink

__all__ = ["Assistant", "MessageSink"]
