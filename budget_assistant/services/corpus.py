# =============================================================================
# Corpus Index — Load-Once, Read-Only Evidence Store
# =============================================================================
#
# Holds every evidence chunk of the Budget 2025 corpus in memory. The corpus
# is a static JSON file produced offline; it is read once at startup and
# never written afterwards, so concurrent requests share it without locks.
#
# FILE FORMAT (either shape is accepted):
#   [ {"id": 0, "text": "...", "source_label": "...", "embedding": [...]}, ... ]
#   { "chunks": [ ... same records ... ] }
#
#   text          required, non-empty string
#   id            optional int, defaults to the record's position
#   source_label  optional string ("source" is accepted as an alias)
#   embedding     optional list of numbers (needed by the embedding scorer)
#
# DESIGN DECISION: Explicit ready/not-ready handle instead of a module-level
# list reassigned at startup. An empty list cannot tell "still loading" apart
# from "loaded, but the corpus is empty"; CorpusIndex can.
#
# STATE MACHINE:
#   NOT_LOADED ──load()──▶ LOADING ──ok──▶ READY
#                                  └─err─▶ FAILED (CorpusLoadError re-raised)
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from budget_assistant.errors import CorpusLoadError, IndexNotReady

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EvidenceChunk:
    """A single retrievable fragment of the budget corpus."""

    id: int
    text: str
    source_label: str | None = None
    embedding: tuple[float, ...] | None = None


class IndexState(str, enum.Enum):
    NOT_LOADED = "not_loaded"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_corpus(data: Any) -> tuple[EvidenceChunk, ...]:
    """
    Validate decoded corpus JSON and build the immutable chunk tuple.

    Raises:
        CorpusLoadError: On any structural problem. The message names the
            offending record so the corpus file can be fixed.
    """
    if isinstance(data, dict):
        data = data.get("chunks")
    if not isinstance(data, list):
        raise CorpusLoadError(
            "Corpus must be a JSON list of chunk records "
            "or an object with a 'chunks' list"
        )

    chunks: list[EvidenceChunk] = []
    seen_ids: set[int] = set()

    for position, record in enumerate(data):
        if not isinstance(record, dict):
            raise CorpusLoadError(f"Chunk record {position} is not an object")

        text = record.get("text")
        if not isinstance(text, str) or not text.strip():
            raise CorpusLoadError(
                f"Chunk record {position} is missing a non-empty 'text' field"
            )

        chunk_id = record.get("id", position)
        # bool is an int subclass; reject it explicitly
        if not isinstance(chunk_id, int) or isinstance(chunk_id, bool):
            raise CorpusLoadError(
                f"Chunk record {position} has a non-integer id: {chunk_id!r}"
            )
        if chunk_id in seen_ids:
            raise CorpusLoadError(f"Duplicate chunk id {chunk_id}")
        seen_ids.add(chunk_id)

        source_label = record.get("source_label", record.get("source"))
        if source_label is not None and not isinstance(source_label, str):
            source_label = str(source_label)

        chunks.append(EvidenceChunk(
            id=chunk_id,
            text=text,
            source_label=source_label or None,
            embedding=_parse_embedding(record.get("embedding"), position),
        ))

    return tuple(chunks)


def load_corpus(path: str | Path) -> tuple[EvidenceChunk, ...]:
    """
    Read and parse a corpus file. Blocking; use CorpusIndex.load() from
    async code.
    """
    corpus_file = Path(path)
    try:
        raw = corpus_file.read_text(encoding="utf-8")
    except OSError as e:
        raise CorpusLoadError(f"Cannot read corpus file {corpus_file}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise CorpusLoadError(
            f"Corpus file {corpus_file} is not valid JSON: {e}"
        ) from e

    return parse_corpus(data)


def _parse_embedding(value: Any, position: int) -> tuple[float, ...] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not value:
        raise CorpusLoadError(
            f"Chunk record {position} has an invalid 'embedding' field"
        )
    try:
        return tuple(float(v) for v in value)
    except (TypeError, ValueError) as e:
        raise CorpusLoadError(
            f"Chunk record {position} has a non-numeric embedding value"
        ) from e


# ---------------------------------------------------------------------------
# Ready/Not-Ready Handle
# ---------------------------------------------------------------------------


class CorpusIndex:
    """
    Container for the evidence chunks that starts empty, is populated once,
    and is then shared read-only with every request handler.

    Readers either get an IndexNotReady error immediately (`chunks`) or wait
    for population (`wait_until_ready()`); they never observe a partially
    populated index.
    """

    def __init__(self) -> None:
        self._chunks: tuple[EvidenceChunk, ...] = ()
        self._state = IndexState.NOT_LOADED
        self._error: CorpusLoadError | None = None
        self._lock = asyncio.Lock()
        self._settled = asyncio.Event()
        self._source: str | None = None

    @classmethod
    def from_chunks(cls, chunks: Sequence[EvidenceChunk]) -> CorpusIndex:
        """Build an already-READY index (offline tools and tests)."""
        index = cls()
        index._publish(tuple(chunks), source="<memory>")
        return index

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is IndexState.READY

    @property
    def load_error(self) -> CorpusLoadError | None:
        return self._error

    @property
    def chunks(self) -> tuple[EvidenceChunk, ...]:
        """All chunks. Raises IndexNotReady unless loading has completed."""
        if self._state is not IndexState.READY:
            raise IndexNotReady(f"Corpus index is {self._state.value}")
        return self._chunks

    @property
    def source(self) -> str | None:
        """Where the chunks were loaded from, once READY."""
        return self._source

    async def load(self, path: str | Path) -> tuple[EvidenceChunk, ...]:
        """
        Load the corpus from `path`, at most once per index.

        Concurrent callers wait on the same load. Once READY, further calls
        return the loaded chunks without touching the file. Once FAILED, the
        original CorpusLoadError is raised again.
        """
        async with self._lock:
            if self._state is IndexState.READY:
                return self._chunks
            if self._state is IndexState.FAILED and self._error is not None:
                raise self._error

            self._state = IndexState.LOADING
            logger.info("Loading Budget 2025 corpus from %s", path)
            try:
                chunks = await asyncio.to_thread(load_corpus, path)
            except CorpusLoadError as e:
                self._state = IndexState.FAILED
                self._error = e
                self._settled.set()
                logger.error("Failed to load corpus: %s", e)
                raise

            self._publish(chunks, source=str(path))

        logger.info(
            "Corpus ready: %d chunks (%d with embeddings)",
            len(chunks), sum(1 for c in chunks if c.embedding is not None),
        )
        return chunks

    async def wait_until_ready(
        self, timeout: float | None = None,
    ) -> tuple[EvidenceChunk, ...]:
        """
        Block until the index is READY.

        Raises:
            IndexNotReady: If loading failed, or `timeout` elapsed first.
        """
        if self._state is IndexState.FAILED:
            raise IndexNotReady("Corpus failed to load") from self._error
        try:
            await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        except TimeoutError as e:
            raise IndexNotReady(
                f"Corpus index not ready after {timeout}s"
            ) from e
        return self.chunks

    def _publish(self, chunks: tuple[EvidenceChunk, ...], source: str) -> None:
        # Chunks are assigned before the state flips so readers that see
        # READY always see the full tuple.
        self._chunks = chunks
        self._source = source
        self._state = IndexState.READY
        self._settled.set()
