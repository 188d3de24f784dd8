"""ChromaDB-backed similarity index of analyzed transcripts."""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Callable, Sequence

from nudgescope.config import COLLECTION_NAME
from nudgescope.storage.models import IndexEntry, SimilarityMatch

logger = logging.getLogger(__name__)

Embedder = Callable[[Sequence[str]], Sequence[Sequence[float]]]


def default_embedder() -> Embedder:
    """Chroma's bundled sentence embedding model (all-MiniLM-L6-v2, ONNX)."""
    from chromadb.utils.embedding_functions import DefaultEmbeddingFunction

    return DefaultEmbeddingFunction()


class ChromaIndex:
    """Similarity search and insertion over one Chroma collection.

    Documents are stored with random ids; the consultation number lives in
    the metadata. Chroma is never asked to upsert, so keeping one entry per
    consultation is up to the caller (see IndexSync).
    """

    def __init__(
        self,
        index_dir: Path | None = None,
        collection_name: str = COLLECTION_NAME,
        embedder: Embedder | None = None,
        client=None,
    ):
        if client is None:
            import chromadb

            if index_dir is None:
                raise ValueError("index_dir is required when no client is given")
            index_dir.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(path=str(index_dir))

        self.client = client
        self.collection_name = collection_name
        self.embedder = embedder or default_embedder()
        self.collection = self._open_collection()

    def _open_collection(self):
        return self.client.get_or_create_collection(
            name=self.collection_name,
            metadata={"hnsw:space": "cosine"},
            embedding_function=None,
        )

    def _embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [list(map(float, vector)) for vector in self.embedder(list(texts))]

    def count(self) -> int:
        return self.collection.count()

    def search(
        self, query: str, top_k: int = 3, similarity_threshold: float = 0.75
    ) -> list[SimilarityMatch]:
        """Nearest transcripts scoring at least `similarity_threshold`, best first."""
        available = self.collection.count()
        if available == 0 or not query.strip():
            return []

        results = self.collection.query(
            query_embeddings=self._embed([query]),
            n_results=min(top_k, available),
            include=["documents", "metadatas", "distances"],
        )

        matches = []
        documents = results["documents"][0]
        metadatas = results["metadatas"][0]
        distances = results["distances"][0]
        for document, metadata, distance in zip(documents, metadatas, distances):
            # cosine space: distance = 1 - cosine similarity
            score = 1.0 - float(distance)
            if score < similarity_threshold:
                continue
            matches.append(
                SimilarityMatch(content=document or "", score=score, metadata=dict(metadata or {}))
            )

        logger.debug(f"Found {len(matches)} similar consultations")
        return matches

    def add(self, entries: list[IndexEntry]) -> int:
        """Insert entries as new documents. Returns how many were added."""
        if not entries:
            return 0
        self.collection.add(
            ids=[uuid.uuid4().hex for _ in entries],
            documents=[e.content for e in entries],
            metadatas=[e.metadata for e in entries],
            embeddings=self._embed([e.content for e in entries]),
        )
        return len(entries)

    def has_consultation(self, consultation_number: str) -> bool:
        found = self.collection.get(
            where={"consultation_number": consultation_number},
            limit=1,
            include=["metadatas"],
        )
        return bool(found["ids"])

    def existing_consultation_numbers(self) -> set[str]:
        found = self.collection.get(include=["metadatas"])
        return {
            m["consultation_number"]
            for m in found["metadatas"] or []
            if m and m.get("consultation_number")
        }

    def clear(self):
        """Drop every document by recreating the collection."""
        self.client.delete_collection(self.collection_name)
        self.collection = self._open_collection()
