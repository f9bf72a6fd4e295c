"""Model invocation: the ``ModelClient`` contract and its pydantic-ai implementation."""

from .base import ModelClient, ModelResponse, ModelToolSpec, estimate_cost

__all__ = ["ModelClient", "ModelResponse", "ModelToolSpec", "estimate_cost"]
