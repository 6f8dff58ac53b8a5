"""
Problem catalog read-through.

The problem catalog is a single large document, ``{category: {"Questions":
[...]}}``, that rarely changes. Pages read it through the object cache and
only go to the remote database on a miss.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from cb.cache.object_cache import clear_cache, get_cache, set_cache
from cb.logging import get_logger

logger = get_logger(__name__)

PROBLEM_CATALOG_CACHE_KEY = "apexProblemsData"

CatalogFetcher = Callable[[], Awaitable["dict[str, Any] | None"]]


async def load_problem_catalog(
    fetch: CatalogFetcher,
    key: str = PROBLEM_CATALOG_CACHE_KEY,
) -> dict[str, Any] | None:
    """Return the catalog from cache, fetching and storing it on a miss.

    Args:
        fetch: Coroutine function returning the catalog from the source of
            truth, or None if it does not exist.
        key: Cache key to read and populate.

    Returns:
        The catalog, or None if it is neither cached nor fetchable.
    """
    cached = await get_cache(key)
    if cached:
        return cached

    try:
        data = await fetch()
    except Exception as e:
        logger.error(
            "Error fetching problem catalog",
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )
        return None

    if not data:
        logger.warning("Problem catalog not found at source", key=key)
        return None

    await set_cache(key, data)
    logger.info("Problem catalog cached", key=key, categories=len(data))
    return data


async def refresh_problem_catalog(
    fetch: CatalogFetcher,
    key: str = PROBLEM_CATALOG_CACHE_KEY,
) -> dict[str, Any] | None:
    """Drop the cached catalog and load it again from the source."""
    await clear_cache(key)
    return await load_problem_catalog(fetch, key)


def flatten_problems(catalog: dict[str, Any] | None) -> list[dict[str, Any]]:
    """Flatten a catalog into a list of problems tagged with categoryName.

    Malformed categories or questions (anything that is not a dict, or a
    ``Questions`` value that is not a list) contribute nothing.
    """
    if not isinstance(catalog, dict):
        return []

    problems: list[dict[str, Any]] = []
    for category_name, category in catalog.items():
        if not isinstance(category, dict):
            continue
        questions = category.get("Questions")
        if not isinstance(questions, list):
            continue
        for problem in questions:
            if not isinstance(problem, dict):
                continue
            problems.append({**problem, "categoryName": category_name})
    return problems
