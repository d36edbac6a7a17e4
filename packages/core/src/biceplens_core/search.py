"""Few-shot example retrieval from an Azure AI Search index.

Examples only sharpen the review; they never decide whether it runs. Every
failure mode (unreachable endpoint, timeout, HTTP error, unexpected payload,
empty index) collapses into an empty list and a warning, after exactly one
bounded attempt.
"""

from __future__ import annotations

import logging
import re

import requests

from biceplens_core.errors import SearchError
from biceplens_core.models import Category, ExampleSnippet

logger = logging.getLogger(__name__)

SEARCH_API_VERSION = "2021-04-30-Preview"

# Resource provider namespaces ("Microsoft.Storage/storageAccounts@2023-01-01")
# sharpen the query for the file actually under review.
_RESOURCE_TYPE_RE = re.compile(r"'(Microsoft\.[A-Za-z]+/[A-Za-z]+)@")
_MAX_QUERY_TYPES = 3


class NullRetriever:
    """Used when no search backend is configured."""

    def retrieve(self, category: Category, file_content: str) -> list[ExampleSnippet]:
        return []

    def close(self) -> None:
        pass


class AzureSearchRetriever:
    def __init__(self, endpoint: str, api_key: str, index: str, top_k: int = 2, timeout: float = 10.0):
        self.endpoint = endpoint.rstrip("/")
        self.index = index
        self.top_k = top_k
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"api-key": api_key, "Accept": "application/json"})

    def build_query(self, category: Category, file_content: str) -> str:
        types: list[str] = []
        for match in _RESOURCE_TYPE_RE.findall(file_content or ""):
            if match not in types:
                types.append(match)
            if len(types) == _MAX_QUERY_TYPES:
                break
        return " ".join([category.value, *types])

    def search(self, query: str, top_k: int) -> list[ExampleSnippet]:
        """Run one query against the index. Raises SearchError on any failure."""
        url = f"{self.endpoint}/indexes/{self.index}/docs"
        params = {"api-version": SEARCH_API_VERSION, "search": query, "$top": top_k}
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            documents = response.json().get("value", [])
        except (requests.RequestException, ValueError, AttributeError) as e:
            raise SearchError(f"{type(e).__name__}: {e}") from e

        snippets = []
        for i, doc in enumerate(documents or []):
            if not isinstance(doc, dict):
                continue
            content = doc.get("content")
            if content:
                snippets.append(ExampleSnippet(id=str(doc.get("id", i)), content=content))
        return snippets

    def retrieve(self, category: Category, file_content: str) -> list[ExampleSnippet]:
        try:
            snippets = self.search(self.build_query(category, file_content), self.top_k)
        except SearchError as e:
            logger.warning("Example search unavailable for %s, reviewing without examples: %s", category.value, e)
            return []
        if not snippets:
            logger.warning("Example search returned no documents for %s", category.value)
        else:
            logger.debug("Retrieved %d example(s) for %s", len(snippets), category.value)
        return snippets

    def close(self) -> None:
        self.session.close()


def get_retriever(config: dict):
    """Return an AzureSearchRetriever when the search backend is configured, else a NullRetriever."""
    endpoint = config.get("azure_search_endpoint")
    key = config.get("azure_search_key")
    index = config.get("azure_search_index")
    if not (endpoint and key and index):
        logger.info("Azure AI Search is not configured; reviewing without few-shot examples.")
        return NullRetriever()
    return AzureSearchRetriever(
        endpoint=endpoint,
        api_key=key,
        index=index,
        top_k=int(config.get("search_top_k", 2)),
        timeout=float(config.get("search_timeout", 10.0)),
    )
