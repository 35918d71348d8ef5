"""Schemas for LLM service.

Pydantic models for LLM requests and responses.
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    """Single chat message."""

    role: Literal["system", "user", "assistant"] = Field(..., description="Message role")
    content: str = Field(..., description="Message content")


class ChatUsage(BaseModel):
    """Token usage statistics reported by the API."""

    prompt_tokens: int = Field(default=0, description="Number of tokens in prompt")
    completion_tokens: int = Field(default=0, description="Number of tokens in completion")
    total_tokens: int = Field(default=0, description="Total number of tokens")


class ChatResult(BaseModel):
    """Non-streaming chat completion result."""

    content: str = Field(..., description="Assistant message text")
    model: str = Field(..., description="Model that produced the answer")
    usage: ChatUsage = Field(default_factory=ChatUsage)
    finish_reason: str | None = Field(default=None)


class LLMClientError(Exception):
    """Base exception for LLM client errors."""

    pass
