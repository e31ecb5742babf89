#!/usr/bin/env python3
"""
Embed the RigVeda corpus and store it in ChromaDB.

Reads the corpus JSON (a list of {id, text, book, bookContext} records),
embeds every verse with the configured embedding model, and upserts the
result into the Chroma collection used by VERSE_INDEX_BACKEND=chroma.

Usage:
    python scripts/index_corpus.py
    python scripts/index_corpus.py --corpus data/rigveda.json --batch-size 50

Requires OPENAI_API_KEY (or LLM_API_KEY) and CHROMA_URL or
CHROMA_PERSIST_DIR, so the collection outlives the process.
"""

import argparse
import logging
import sys

from rigveda_qa.config import settings
from rigveda_qa.services.embedder import embed_verses
from rigveda_qa.services.verse_index import ChromaVerseIndex, load_corpus

logger = logging.getLogger("index_corpus")


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--corpus", default=settings.corpus_path, help="Corpus JSON file")
    parser.add_argument(
        "--collection", default=settings.chroma_collection, help="Chroma collection name",
    )
    parser.add_argument(
        "--batch-size", type=int, default=settings.embedding_batch_size,
        help="Verses per embedding request",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    if not (settings.chroma_url or settings.chroma_persist_dir):
        logger.warning(
            "Neither CHROMA_URL nor CHROMA_PERSIST_DIR is set; "
            "the index will be lost when this script exits"
        )

    passages = load_corpus(args.corpus)
    if not passages:
        logger.error("No verses found in %s", args.corpus)
        return 1

    embeddings = embed_verses(passages, batch_size=args.batch_size)
    index = ChromaVerseIndex(collection_name=args.collection)
    stored = index.add_verses(passages, embeddings)

    print(f"Indexed {stored} verses into collection '{args.collection}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
