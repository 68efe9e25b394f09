# -*- coding: utf-8 -*-
"""
Ranking of catalog records against a free-text query.

Scoring is whole-word overlap: the share of query words found in the
record's "<category> <title>" text, as a 0-100 integer. The fuzzy
suggestions below are only used to propose titles when nothing matched.
"""
import math
from dataclasses import dataclass
from typing import List, Set

from rapidfuzz import fuzz, process

from catalog import Catalog, CatalogRecord


@dataclass(frozen=True)
class SearchMatch:
    record: CatalogRecord
    rank: int


def tokenize(text: str) -> List[str]:
    return [tok for tok in (text or "").lower().split() if tok]


def record_tokens(record: CatalogRecord) -> Set[str]:
    return set(tokenize(f"{record.category} {record.title}"))


def score(query_tokens: Set[str], record: CatalogRecord) -> int:
    if not query_tokens:
        return 0
    hits = len(query_tokens & record_tokens(record))
    # halves round up
    return math.floor(100 * hits / len(query_tokens) + 0.5)


def rank(query: str, catalog: Catalog) -> List[SearchMatch]:
    """Matching records, best first; equal scores keep catalog order."""
    query_tokens = set(tokenize(query))
    if not query_tokens:
        return []
    matches = []
    for record in catalog:
        s = score(query_tokens, record)
        if s > 0:
            matches.append(SearchMatch(record=record, rank=s))
    # sorted() is stable
    return sorted(matches, key=lambda m: -m.rank)


def suggest(query: str, catalog: Catalog, limit: int = 3, score_cutoff: int = 60) -> List[CatalogRecord]:
    """Closest titles by fuzzy token-set ratio, for "did you mean" hints."""
    q = " ".join(tokenize(query))
    if not q or not len(catalog):
        return []
    records = catalog.records
    results = process.extract(
        q,
        [r.title.lower() for r in records],
        scorer=fuzz.token_set_ratio,
        limit=limit,
        score_cutoff=score_cutoff,
    )
    # extract() returns (choice, score, index) tuples
    return [records[index] for _, _, index in results]
