"""Character-trigram similarity index over server capability terms.

Index lifecycle:
- `rebuild(registrations)` replaces the whole index. The registry calls it
  after every register/unregister, so the index always mirrors the current
  registrations.
- One row per (server, term). Terms come from the server name, description
  words, domains, entities and operations.

Vectorization:
- Terms are padded with spaces and split into character trigrams.
- Trigrams are hashed with CRC32 into a fixed-width float32 count vector,
  then L2-normalized so inner product equals cosine similarity.

Search:
- Each query token is compared against every indexed term with a FAISS
  `IndexFlatIP`. A server's distance is `1 - best cosine` over all of its
  terms and all query tokens.

Determinism:
- CRC32 hashing and flat exact search make results deterministic.
"""

import logging
import re
import zlib

import faiss
import numpy as np

from routewise.core.types import ServerRegistration


logger = logging.getLogger(__name__)


VECTOR_DIM = 1024
MIN_TERM_LENGTH = 2


def _terms(text: str) -> list[str]:
    words = re.findall(r"\w+", str(text).lower())
    terms = []
    for word in words:
        terms.append(word)
        if "_" in word:
            terms.extend(part for part in word.split("_") if part)
    return [t for t in terms if len(t) >= MIN_TERM_LENGTH]


def trigram_vector(term: str) -> np.ndarray:
    """Return the unnormalized hashed trigram count vector for one term."""
    vec = np.zeros(VECTOR_DIM, dtype="float32")
    padded = f" {term} "
    for i in range(len(padded) - 2):
        bucket = zlib.crc32(padded[i:i + 3].encode("utf-8")) % VECTOR_DIM
        vec[bucket] += 1.0
    return vec


def _embed(terms: list[str]) -> np.ndarray:
    vectors = np.array([trigram_vector(t) for t in terms]).astype("float32")
    faiss.normalize_L2(vectors)
    return vectors


def server_terms(registration: ServerRegistration) -> list[str]:
    """Collect the deduplicated searchable terms for one registration."""
    cap = registration.capability
    sources = [registration.name, cap.description, *cap.domains, *cap.entities, *cap.operations]

    seen: set[str] = set()
    terms: list[str] = []
    for source in sources:
        for term in _terms(source):
            if term not in seen:
                seen.add(term)
                terms.append(term)
    return terms


class FuzzyServerIndex:
    """Trigram nearest-neighbour lookup from free terms to server names."""

    def __init__(self):
        self._index = faiss.IndexFlatIP(VECTOR_DIM)
        self._row_owner: list[str] = []

    @property
    def size(self) -> int:
        return self._index.ntotal

    def rebuild(self, registrations: list[ServerRegistration]) -> None:
        index = faiss.IndexFlatIP(VECTOR_DIM)
        owners: list[str] = []
        rows: list[str] = []

        for registration in registrations:
            for term in server_terms(registration):
                owners.append(registration.name)
                rows.append(term)

        if rows:
            index.add(_embed(rows))

        self._index = index
        self._row_owner = owners
        logger.debug("Rebuilt fuzzy server index with %d terms", len(rows))

    def search(self, query: str) -> list[tuple[str, float]]:
        """
        Return `(server_name, distance)` pairs, best first.

        Args:
            query: Free text; split into terms the same way as indexed text.

        Returns:
            Every indexed server with its best distance in `[0, 1]`. Ties keep
            index order (registration order).

        Edge cases:
        - Empty index or a query with no usable terms returns an empty list.
        """
        terms = _terms(query)
        if not terms or self._index.ntotal == 0:
            return []

        scores, indices = self._index.search(_embed(terms), self._index.ntotal)

        best: dict[str, float] = {}
        for row_scores, row_indices in zip(scores, indices):
            for score, idx in zip(row_scores, row_indices):
                if idx < 0 or idx >= len(self._row_owner):
                    continue
                owner = self._row_owner[idx]
                best[owner] = max(best.get(owner, -1.0), float(score))

        order = {name: i for i, name in enumerate(dict.fromkeys(self._row_owner))}
        ranked = sorted(best.items(), key=lambda item: (-item[1], order[item[0]]))
        return [(name, max(0.0, 1.0 - similarity)) for name, similarity in ranked]
