"""
Retriever Module
================
Keyword lookup over the local knowledge base for retrieval-augmented
generation (RAG) in Precautions mode.

The store is scanned in its fixed order and the body of the first article
with a keyword contained in the lowercased query is returned. At most one
article is ever returned; an empty string means "no context".
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from medibot.knowledge_base import KNOWLEDGE_BASE, KnowledgeArticle

logger = logging.getLogger(__name__)


class Retriever:
    """Single-document keyword retriever.

    Attributes:
        articles: Ordered, read-only article collection.
    """

    def __init__(self, articles: Optional[Iterable[KnowledgeArticle]] = None) -> None:
        self.articles: tuple[KnowledgeArticle, ...] = tuple(
            KNOWLEDGE_BASE if articles is None else articles
        )

    def find_article(self, query: str) -> Optional[KnowledgeArticle]:
        """Return the first article with a keyword found in ``query``."""
        normalized = (query or "").lower()
        if not normalized.strip():
            return None

        for article in self.articles:
            if any(keyword in normalized for keyword in article.keywords):
                return article
        return None

    def retrieve(self, query: str) -> str:
        """Return the matching article body, or ``""`` when nothing matches.

        Args:
            query: Free-text user query.

        Returns:
            Article content or empty string.
        """
        article = self.find_article(query)
        if article is None:
            logger.info("RAG: no article for query '%s'.", (query or "")[:60])
            return ""

        logger.info("RAG: matched article '%s' for query '%s'.", article.id, query[:60])
        return article.content


_default_retriever = Retriever()


def retrieve(query: str) -> str:
    """Module-level lookup against the built-in knowledge base."""
    return _default_retriever.retrieve(query)
