#!/usr/bin/env python3
"""
Precompute chunk embeddings for the Budget 2025 corpus.

Reads the corpus JSON, embeds every chunk with the configured embedding
model, and writes the corpus back out with an `embedding` field on each
record. The online EmbeddingScorer must use the same model, so run this
again whenever EMBEDDING_MODEL or EMBEDDING_DIMENSIONS changes.

Usage (from the repository root):
    python -m scripts.embed_corpus
    python -m scripts.embed_corpus data/budget_corpus_2025.json -o data/embedded.json

    Running the file directly (`python scripts/embed_corpus.py`) only works
    once the package is installed, e.g. `pip install -e .`.

Output:
    The input file (rewritten in place) unless --output is given.
"""

import argparse
import json
import logging
from pathlib import Path

from budget_assistant.config import settings
from budget_assistant.services.corpus import load_corpus
from budget_assistant.services.embedder import embed_batch

logger = logging.getLogger("embed_corpus")


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("corpus", nargs="?", default=settings.corpus_path)
    parser.add_argument("-o", "--output", default=None)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    chunks = load_corpus(args.corpus)
    embeddings = embed_batch([c.text for c in chunks])

    records = [
        {
            "id": chunk.id,
            "text": chunk.text,
            "source_label": chunk.source_label,
            "embedding": embedding,
        }
        for chunk, embedding in zip(chunks, embeddings, strict=True)
    ]

    output = Path(args.output or args.corpus)
    output.write_text(json.dumps(records, ensure_ascii=False), encoding="utf-8")
    logger.info(
        "Wrote %d embedded chunks to %s (model=%s)",
        len(records), output, settings.embedding_model,
    )


if __name__ == "__main__":
    main()
