"""
LLM Client Infrastructure
==========================

Wrapper for the LLM provider providing a clean interface for completions
and embeddings.

The application layer depends on ILLMClient, not on a concrete provider,
so generation, evaluation and retrieval can be exercised with fakes.
"""

import asyncio
import hashlib
import json
import math
import re
import time
from typing import List, Optional
from abc import ABC, abstractmethod

import openai
from openai import AsyncOpenAI

from helpdesk_ai.config import settings
from helpdesk_ai.core import LLMException, ConfigurationException
from helpdesk_ai.shared.infrastructure.grafana import get_grafana_exporter


class EmbeddingResult:
    """Result of an embedding generation."""

    def __init__(self, embedding: List[float], model: str):
        self.embedding = embedding
        self.model = model
        self.dimension = len(embedding)


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Only the two capabilities the application needs: embeddings and
    chat completion over role-tagged messages.
    """

    @abstractmethod
    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """Generate embedding for text."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""


class OpenAILLMClient(ILLMClient):
    """
    OpenAI client implementation.

    Every call is bounded by settings.llm_timeout_seconds; a timeout is
    reported as an LLMException like any other transport failure.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self._api_key = api_key or settings.openai_api_key
        if not self._api_key:
            raise ConfigurationException("OpenAI API key not configured")

        self._timeout = timeout or settings.llm_timeout_seconds
        self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        self._model = model or settings.llm_model
        self._embedding_model = embedding_model or settings.embedding_model

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        """
        Generate embedding for text.

        Raises:
            LLMException: If embedding generation fails or times out
        """
        try:
            response = await asyncio.wait_for(
                self._client.embeddings.create(
                    model=self._embedding_model,
                    input=text,
                    encoding_format="float"
                ),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise LLMException("Embedding generation timed out", {"timeout": self._timeout})
        except openai.RateLimitError as e:
            raise LLMException(f"Embedding generation rate limited: {e}", {"rate_limited": True})
        except openai.OpenAIError as e:
            raise LLMException(f"Embedding generation failed: {e}")

        return EmbeddingResult(
            embedding=response.data[0].embedding,
            model=self._embedding_model
        )

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate chat completion.

        Args:
            messages: List of message dicts with 'role' and 'content'
            temperature: Sampling temperature (0-1)
            max_tokens: Maximum tokens to generate
            operation: Operation type for metrics (generation, evaluation)

        Raises:
            LLMException: If completion fails or times out
        """
        start_time = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=temperature,
                    max_tokens=max_tokens
                ),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise LLMException(f"{operation} timed out", {"timeout": self._timeout})
        except openai.RateLimitError as e:
            raise LLMException(f"{operation} rate limited: {e}", {"rate_limited": True})
        except openai.OpenAIError as e:
            raise LLMException(f"{operation} failed: {e}")

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        content = response.choices[0].message.content
        if content is None:
            raise LLMException(f"{operation} returned no content")

        usage = response.usage
        result = ChatCompletionResult(
            content=content,
            model=response.model or self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms
        )

        exporter = get_grafana_exporter()
        if exporter and exporter.is_enabled():
            await exporter.export_llm_metrics(
                model=result.model,
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                latency_ms=latency_ms,
                operation=operation
            )

        return result


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for local development and tests.

    Embeddings are hashed bag-of-words vectors, so texts sharing words are
    similar. Evaluation requests get an approving rubric verdict.
    """

    def __init__(self, dimension: Optional[int] = None):
        self._dimension = dimension or settings.embedding_dimension

    async def generate_embedding(self, text: str) -> EmbeddingResult:
        vector = [0.0] * self._dimension
        for token in re.findall(r"[a-z0-9]+", text.lower()):
            digest = hashlib.sha256(token.encode()).digest()
            vector[int.from_bytes(digest[:4], "big") % self._dimension] += 1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm:
            vector = [v / norm for v in vector]
        return EmbeddingResult(embedding=vector, model="mock-embedding")

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.3,
        max_tokens: int = 1000,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        if operation == "evaluation":
            analysis = "Mock: no issues found."
            content = json.dumps({
                "needsHandoff": False,
                "confidence": 0.9,
                "kbGaps": [],
                "analysis": {
                    "technicalAccuracy": analysis,
                    "conversationFlow": analysis,
                    "customerSentiment": analysis,
                    "responseQuality": analysis,
                    "kbUtilization": analysis,
                }
            })
        else:
            content = (
                "Thanks for reaching out. Here is what you can try:\n"
                "1. Review the linked article\n"
                "2. Reply here if the issue persists"
            )

        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=sum(len(str(m.get("content", "")).split()) for m in messages),
            completion_tokens=len(content.split()),
            latency_ms=1
        )
