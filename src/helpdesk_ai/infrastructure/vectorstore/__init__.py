"""
Vector Store Infrastructure
============================

Similarity search over KB article embeddings.

Every search is scoped to one organization and to published articles;
the filter is applied by the backend, never left to the caller.
"""

import asyncio
import json
import math
from typing import Dict, List, Optional
from abc import ABC, abstractmethod
from dataclasses import dataclass

from pymilvus import MilvusClient

from helpdesk_ai.config import settings, ArticleStatus
from helpdesk_ai.core import VectorStoreException


@dataclass
class Document:
    """KB article vector for storage."""
    id: str
    embedding: List[float]
    organization_id: str
    status: str
    title: str


@dataclass
class SearchResult:
    """Result from vector search."""
    id: str
    score: float
    metadata: dict


class IVectorStore(ABC):
    """Interface for vector store operations."""

    @abstractmethod
    async def initialize(self) -> None:
        """Initialize the vector store."""

    @abstractmethod
    async def get_document_count(self) -> int:
        """Get number of documents in the collection."""

    @abstractmethod
    async def upsert_documents(self, documents: List[Document]) -> None:
        """Insert or replace article vectors."""

    @abstractmethod
    async def search(
        self,
        query_embedding: List[float],
        organization_id: str,
        top_k: int = 3
    ) -> List[SearchResult]:
        """Search published articles of one organization, most similar first."""


def _quote(value: str) -> str:
    return json.dumps(str(value))


class MilvusVectorStore(IVectorStore):
    """
    Zilliz Cloud (Managed Milvus) implementation of vector store.

    Uses the quick-setup collection layout: string primary key, a "vector"
    field with COSINE metric and dynamic fields for organization_id,
    status and title.
    """

    def __init__(
        self,
        collection_name: Optional[str] = None,
        uri: Optional[str] = None,
        api_key: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None
    ):
        self._collection_name = collection_name or settings.milvus_collection_name
        self._uri = uri or settings.zilliz_uri
        self._api_key = api_key or settings.zilliz_api_key
        self._dimension = dimension or settings.embedding_dimension
        self._timeout = timeout or settings.vector_timeout_seconds
        self._client: Optional[MilvusClient] = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize Milvus client and collection."""
        if self._initialized:
            return

        if not self._uri:
            raise VectorStoreException("ZILLIZ_URI not configured")

        try:
            self._client = MilvusClient(uri=self._uri, token=self._api_key or "")

            if not self._client.has_collection(self._collection_name):
                self._client.create_collection(
                    collection_name=self._collection_name,
                    dimension=self._dimension,
                    id_type="string",
                    max_length=64,
                    metric_type="COSINE"
                )

            self._initialized = True

        except Exception as e:
            raise VectorStoreException(f"Failed to initialize Milvus: {e}")

    async def _ensure_client(self) -> MilvusClient:
        if not self._initialized:
            await self.initialize()
        if not self._client:
            raise VectorStoreException("Vector store not initialized")
        return self._client

    async def get_document_count(self) -> int:
        client = await self._ensure_client()
        try:
            stats = await asyncio.to_thread(
                client.get_collection_stats, self._collection_name
            )
        except Exception as e:
            raise VectorStoreException(f"Failed to read collection stats: {e}")
        return int(stats.get("row_count", 0))

    async def upsert_documents(self, documents: List[Document]) -> None:
        """
        Insert or replace article vectors.

        Raises:
            VectorStoreException: If the upsert fails
        """
        client = await self._ensure_client()

        data = [
            {
                "id": doc.id,
                "vector": doc.embedding,
                "organization_id": doc.organization_id,
                "status": doc.status,
                "title": doc.title,
            }
            for doc in documents
        ]

        try:
            await asyncio.to_thread(
                client.upsert, collection_name=self._collection_name, data=data
            )
        except Exception as e:
            raise VectorStoreException(f"Failed to upsert documents: {e}")

    async def search(
        self,
        query_embedding: List[float],
        organization_id: str,
        top_k: int = 3
    ) -> List[SearchResult]:
        """
        Search published articles of one organization.

        Raises:
            VectorStoreException: If search fails or times out
        """
        client = await self._ensure_client()
        expr = (
            f"organization_id == {_quote(organization_id)} "
            f"and status == {_quote(ArticleStatus.PUBLISHED)}"
        )

        try:
            results = await asyncio.wait_for(
                asyncio.to_thread(
                    client.search,
                    collection_name=self._collection_name,
                    data=[query_embedding],
                    filter=expr,
                    limit=top_k,
                    output_fields=["organization_id", "status", "title"]
                ),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise VectorStoreException("Search timed out", {"timeout": self._timeout})
        except Exception as e:
            raise VectorStoreException(f"Search failed: {e}")

        formatted_results = []
        if results and len(results) > 0:
            for hit in results[0]:
                formatted_results.append(SearchResult(
                    id=str(hit["id"]),
                    score=float(hit["distance"]),
                    metadata=dict(hit.get("entity", {}))
                ))

        return formatted_results


class InMemoryVectorStore(IVectorStore):
    """
    In-process cosine similarity index.

    Used when no Milvus backend is configured (development, tests).
    """

    def __init__(self):
        self._documents: Dict[str, Document] = {}

    async def initialize(self) -> None:
        return None

    async def get_document_count(self) -> int:
        return len(self._documents)

    async def upsert_documents(self, documents: List[Document]) -> None:
        for doc in documents:
            self._documents[doc.id] = doc

    async def search(
        self,
        query_embedding: List[float],
        organization_id: str,
        top_k: int = 3
    ) -> List[SearchResult]:
        scored = [
            SearchResult(
                id=doc.id,
                score=_cosine(query_embedding, doc.embedding),
                metadata={
                    "organization_id": doc.organization_id,
                    "status": doc.status,
                    "title": doc.title,
                }
            )
            for doc in self._documents.values()
            if doc.organization_id == organization_id
            and doc.status == ArticleStatus.PUBLISHED
        ]
        scored.sort(key=lambda r: (-r.score, r.id))
        return scored[:top_k]


def _cosine(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0
