#!/usr/bin/env python3
"""
Search the RigVeda verse index from the command line.

Queries go straight to the configured index (VERSE_INDEX_BACKEND): a verse
reference such as 10.129 or 3.62.10 is looked up by number, anything else
is a similarity/keyword search. With --model, the query is first turned
into a Sanskrit search term by the searcher agent, exactly as in /ask.

Usage:
    python scripts/search_verses.py "अग्नि"
    python scripts/search_verses.py 10.129 --top-k 7
    python scripts/search_verses.py "hymn of creation" --model anthropic/claude-sonnet-4-6
    python scripts/search_verses.py "soma" --model openai_compatible/qwen-plus@http://localhost:8000/v1
"""

import argparse
import asyncio
import logging
import sys

from rigveda_qa.agents.searcher import SearcherAgent
from rigveda_qa.agents.types import SearcherInput, SearcherOutput
from rigveda_qa.agents.validation import validate_searcher_output
from rigveda_qa.services.llm import create_provider_from_id
from rigveda_qa.services.verse_index import (
    KeywordVerseIndex,
    VerseIndex,
    get_verse_index,
    parse_reference,
)

logger = logging.getLogger("search_verses")

_RULE = "-" * 60


async def run_search(
    query: str,
    top_k: int = 10,
    provider_id: str | None = None,
    index: VerseIndex | None = None,
) -> SearcherOutput:
    """
    Run one search and return it as a searcher envelope.

    Raises:
        ValueError: If provider_id is malformed or its API key is missing.
    """
    index = index or get_verse_index()
    await index.initialize()

    if provider_id:
        llm = create_provider_from_id(provider_id)
        searcher = SearcherAgent(llm, index, top_k=top_k)
        return validate_searcher_output(
            await searcher.search(SearcherInput(user_query=query))
        )

    term = query.strip()
    if parse_reference(term) is not None:
        results = await index.lookup(term, limit=top_k)
        search_type = "book_context"
    else:
        results = await index.search(term, top_k=top_k)
        search_type = "keyword" if isinstance(index, KeywordVerseIndex) else "vector"

    return SearcherOutput(
        success=True,
        search_results=results,
        search_type=search_type,
        search_term=term,
    )


def format_results(output: SearcherOutput) -> str:
    lines = [f'{output.search_type} search for "{output.search_term}": '
             f"{len(output.search_results)} verses"]
    for i, passage in enumerate(output.search_results, start=1):
        score = f"{passage.score:.4f}" if passage.score is not None else "-"
        lines += [
            "",
            f"RESULT {i}",
            _RULE,
            f"Score:  {score}",
            f"Source: {passage.title or passage.context_key}",
            f"Text:   {passage.text}",
        ]
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("query", help="Search text or a verse reference (M.H or M.H.V)")
    parser.add_argument("--top-k", type=int, default=10, help="Maximum verses to show")
    parser.add_argument(
        "--model", metavar="PROVIDER/MODEL[@BASE_URL]",
        help="Generate the Sanskrit search term with this LLM first",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        output = asyncio.run(run_search(args.query, args.top_k, args.model))
    except ValueError as e:
        logger.error("%s", e)
        return 2

    print(format_results(output))
    return 0 if output.search_results else 1


if __name__ == "__main__":
    sys.exit(main())
