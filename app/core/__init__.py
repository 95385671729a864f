"""Core module containing interfaces."""

from app.core.interfaces import IAutomationStore, IReplySender, IReplyGenerator

__all__ = ["IAutomationStore", "IReplySender", "IReplyGenerator"]
