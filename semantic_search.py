# semantic_search.py

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from langchain_openai import OpenAIEmbeddings
from postgrest.exceptions import APIError
from supabase import AsyncClient

from config_manager import ConfigManager
from errors import TransportError
from models import ScoredMatch

logger = logging.getLogger(__name__)


class SemanticSearch(ABC):
    """Black-box vector search backend consumed by SearchGateway."""

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        pass

    @abstractmethod
    async def query_records(self, vector: List[float], limit: int) -> List[ScoredMatch]:
        pass

    @abstractmethod
    async def query_articles(self, vector: List[float], limit: int) -> List[ScoredMatch]:
        pass


class SupabaseSemanticSearch(SemanticSearch):
    """
    OpenAI embeddings plus pgvector match functions exposed by Supabase as RPCs.

    The match functions take (query_embedding, match_threshold, match_count) and
    return rows of (id, similarity); the matching rows are then loaded from
    their tables to fill in titles and content.
    """
    def __init__(self, config: ConfigManager, client: AsyncClient,
                 embeddings: Optional[OpenAIEmbeddings] = None):
        self.config = config
        self.client = client
        self.embeddings = embeddings or OpenAIEmbeddings(
            model=config.embedding_model,
            api_key=config.openai_api_key,
        )

    async def embed(self, text: str) -> List[float]:
        try:
            return await self.embeddings.aembed_query(text)
        except Exception as e:
            logger.error(f"Embedding request failed: {e}", exc_info=True)
            raise TransportError("Embedding service unavailable.", cause=e) from e

    async def query_records(self, vector: List[float], limit: int) -> List[ScoredMatch]:
        scores = await self._match(self.config.match_tickets_function, vector, limit)
        if not scores:
            return []
        rows = await self._load(self.config.tables['tickets'],
                                "id, number, subject, description, status, priority", list(scores))
        return [
            ScoredMatch(
                id=str(row["id"]),
                number=row.get("number"),
                title=row.get("subject") or "",
                content=row.get("description") or "",
                status=row.get("status"),
                priority=row.get("priority"),
                similarity=scores[str(row["id"])],
            )
            for row in rows if str(row["id"]) in scores
        ]

    async def query_articles(self, vector: List[float], limit: int) -> List[ScoredMatch]:
        scores = await self._match(self.config.match_articles_function, vector, limit)
        if not scores:
            return []
        rows = await self._load(self.config.tables['articles'], "id, title, content, category", list(scores))
        return [
            ScoredMatch(
                id=str(row["id"]),
                title=row.get("title") or "",
                content=row.get("content") or "",
                category=row.get("category"),
                similarity=scores[str(row["id"])],
            )
            for row in rows if str(row["id"]) in scores
        ]

    async def _match(self, function: str, vector: List[float], limit: int) -> Dict[str, float]:
        params = {
            "query_embedding": vector,
            "match_threshold": self.config.match_threshold,
            "match_count": limit,
        }
        response = await self._run(self.client.rpc(function, params), f"calling {function}")
        # Similarity from pgvector can drift slightly outside [0, 1].
        return {
            str(r["id"]): min(max(float(r["similarity"]), 0.0), 1.0)
            for r in (response.data or [])
        }

    async def _load(self, table: str, columns: str, ids: List[str]) -> List[Dict[str, Any]]:
        query = self.client.table(table).select(columns).in_("id", ids)
        response = await self._run(query, f"loading matches from {table}")
        return response.data or []

    async def _run(self, query, what: str):
        try:
            return await query.execute()
        except APIError as e:
            logger.error(f"Supabase API error while {what}: {e.message} (code {e.code})", exc_info=True)
            raise TransportError(f"Search backend rejected the request while {what}.", cause=e) from e
        except Exception as e:
            logger.error(f"Unexpected error while {what}: {e}", exc_info=True)
            raise TransportError(f"Search backend unavailable while {what}.", cause=e) from e
