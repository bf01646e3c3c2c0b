# search_gateway.py

import asyncio
import logging
from typing import List, Optional

from config_manager import ConfigManager
from errors import TransportError
from models import ScoredMatch, SearchResult, SearchResults, Ticket
from record_store import RecordStore
from semantic_search import SemanticSearch

logger = logging.getLogger(__name__)


def truncate(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    return text[:max(limit - 3, 0)].rstrip() + "..."


class SearchGateway:
    """
    Turns a free-text query, optionally anchored to a ticket, into two ranked
    lists: similar tickets and knowledge-base articles.
    """
    def __init__(self, config: ConfigManager, semantic_search: SemanticSearch, record_store: RecordStore):
        self.config = config
        self.semantic_search = semantic_search
        self.record_store = record_store

    async def search(self, query: str, target_number: Optional[int] = None) -> SearchResults:
        """
        Runs the ticket and article lookups concurrently over one embedding.
        When `target_number` is given, the ticket's subject and description are
        appended to the query text so the results are anchored to it.

        Returns:
            SearchResults; both lists empty is a valid "no matches" answer.

        Raises:
            RecordNotFound: the anchor ticket does not exist.
            TransportError: either backend lookup failed.
        """
        anchor: Optional[Ticket] = None
        text = query.strip()
        if target_number is not None:
            anchor = await self.record_store.get_by_number(target_number)
            text = f"{text} {anchor.subject} {anchor.description}".strip()
            logger.debug(f"Search anchored to ticket #{target_number}")

        vector = await self.semantic_search.embed(text)
        outcomes = await asyncio.gather(
            self.semantic_search.query_records(vector, self.config.record_limit),
            self.semantic_search.query_articles(vector, self.config.article_limit),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, TransportError):
                raise outcome
            if isinstance(outcome, BaseException):
                raise TransportError("Search backend failed.", cause=outcome) from outcome
        record_matches, article_matches = outcomes

        records = [self._to_result("record", m) for m in record_matches
                   if anchor is None or m.id != anchor.id]
        articles = [self._to_result("article", m) for m in article_matches]
        results = SearchResults(records=self._ranked(records), articles=self._ranked(articles), anchor=anchor)
        logger.info(f"Search returned {len(results.records)} ticket(s) and {len(results.articles)} article(s)")
        return results

    async def lookup(self, ticket_number: int) -> Ticket:
        """Reads one ticket without searching around it. Raises RecordNotFound or TransportError."""
        ticket = await self.record_store.get_by_number(ticket_number)
        logger.info(f"Looked up ticket #{ticket_number}")
        return ticket

    def _to_result(self, kind: str, match: ScoredMatch) -> SearchResult:
        return SearchResult(
            kind=kind,
            id=match.id,
            number=match.number,
            title=match.title,
            excerpt=truncate(match.content, self.config.excerpt_length),
            similarity=match.similarity,
            category=match.category,
            status=match.status,
        )

    @staticmethod
    def _ranked(results: List[SearchResult]) -> List[SearchResult]:
        return sorted(results, key=lambda r: r.similarity, reverse=True)
