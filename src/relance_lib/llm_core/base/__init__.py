"""Model client abstractions."""

from .base import ModelClient, BaseModelClient, ModelReply

__all__ = ["ModelClient", "BaseModelClient", "ModelReply"]
