# -*- coding: utf-8 -*-
"""
Movie catalog: feed parsing, loading and the shared in-memory snapshot.

Feeds are plain text, one movie per line:

    <title>,<imdb id>,<poster url>,<wiki url>

The title may itself contain commas, so the three trailing fields are cut
from the end of the line and whatever is left is the title.
"""
import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import requests

from errors import SourceUnavailable
from pagination import fits_token

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = ","
TRAILING_FIELDS = 3  # imdb id, poster, wiki link

_executor = ThreadPoolExecutor(max_workers=4)


@dataclass(frozen=True)
class CatalogRecord:
    category: str
    title: str
    key: str
    media_ref: str
    info_link: str


class Catalog:
    """Immutable snapshot of the movie list, in feed order, indexed by key."""

    def __init__(self, records: Iterable[CatalogRecord] = ()):
        unique: Dict[str, CatalogRecord] = {}
        for record in records:
            # first occurrence wins
            unique.setdefault(record.key, record)
        self._records: Tuple[CatalogRecord, ...] = tuple(unique.values())
        self._by_key = unique

    @property
    def records(self) -> Tuple[CatalogRecord, ...]:
        return self._records

    def get(self, key: str) -> Optional[CatalogRecord]:
        return self._by_key.get(key)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CatalogRecord]:
        return iter(self._records)

    def __contains__(self, key) -> bool:
        return key in self._by_key

    def __repr__(self) -> str:
        return f"<Catalog records={len(self._records)}>"


# ------------------ PARSING ------------------
def parse_line(line: str, category: str) -> Optional[CatalogRecord]:
    """Parse one feed line; returns None for anything incomplete."""
    parts = line.strip().rsplit(FIELD_SEPARATOR, TRAILING_FIELDS)
    if len(parts) != TRAILING_FIELDS + 1:
        return None
    title, imdb_id, poster, wiki = (p.strip() for p in parts)
    if not title or not imdb_id or not poster or not wiki:
        return None
    if not fits_token(imdb_id):
        return None
    return CatalogRecord(category=category, title=title, key=imdb_id, media_ref=poster, info_link=wiki)


def parse_feed(text: str, category: str) -> List[CatalogRecord]:
    records = []
    for line in text.splitlines():
        if not line.strip():
            continue
        record = parse_line(line, category)
        if record is not None:
            records.append(record)
    return records


# ------------------ FETCHING ------------------
def fetch_feed(url: str, timeout: float = 15) -> str:
    """Blocking GET of a feed. Raises requests.RequestException on failure."""
    res = requests.get(url, timeout=timeout)
    res.raise_for_status()
    return res.text


async def fetch_source(category: str, url: str, fetch: Callable[[str], str] = fetch_feed) -> str:
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(_executor, fetch, url)
    except requests.RequestException as e:
        raise SourceUnavailable(category, url, str(e)) from e


async def load_catalog(sources: Sequence[Tuple[str, str]], fetch: Callable[[str], str] = fetch_feed) -> Catalog:
    """
    Fetch every (category, url) source concurrently and build a fresh catalog.

    Unavailable sources are skipped, so the result may be partial or empty;
    this never raises for feed problems.
    """
    async def _one(category, url):
        try:
            return await fetch_source(category, url, fetch)
        except SourceUnavailable as e:
            logger.warning("Skipping source: %s", e)
            return None

    texts = await asyncio.gather(*(_one(category, url) for category, url in sources))

    records: List[CatalogRecord] = []
    for (category, _), text in zip(sources, texts):
        if text is None:
            continue
        parsed = parse_feed(text, category)
        logger.info("Loaded %d movies for %s", len(parsed), category)
        records.extend(parsed)

    catalog = Catalog(records)
    logger.info("Catalog built: %d unique movies from %d sources", len(catalog), len(sources))
    return catalog


# ------------------ SHARED SNAPSHOT ------------------
class CatalogStore:
    """
    Owns the catalog shared by all handlers.

    The published catalog is replaced by a single assignment once a load has
    fully finished, so readers see either the old or the new snapshot. All
    callers arriving while a load is running await that same load.
    """

    def __init__(self, sources: Sequence[Tuple[str, str]], fetch: Callable[[str], str] = fetch_feed):
        self._sources = list(sources)
        self._fetch = fetch
        self._catalog = Catalog()
        self._pending: Optional[asyncio.Future] = None

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    async def get(self) -> Catalog:
        """Current catalog, loading it first if it is still empty."""
        if len(self._catalog):
            return self._catalog
        return await self.reload()

    async def reload(self) -> Catalog:
        # no await between the check and the assignment, so only one load starts
        if self._pending is None or self._pending.done():
            self._pending = asyncio.ensure_future(self._load())
        return await asyncio.shield(self._pending)

    async def _load(self) -> Catalog:
        catalog = await load_catalog(self._sources, self._fetch)
        self._catalog = catalog
        return catalog
