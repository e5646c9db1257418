"""
CLI Entrypoint for the patent ranker

Runs the full pipeline on a query against the Supabase patents table and
outputs the ranked results as JSON.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

# Load .env file before importing modules that need env vars
load_dotenv()

from patent_ranker.agent import RankingPipeline, build_request
from patent_ranker.backends.embeddings import OpenAIEmbedder
from patent_ranker.backends.llm import LLMClient
from patent_ranker.backends.supabase import (
    SupabaseClient,
    SupabaseGraphLookup,
    SupabaseLexicalSearch,
    SupabaseVectorSearch,
)
from patent_ranker.config import PipelineSettings
from patent_ranker.errors import InvalidRequestError
from patent_ranker.judge import CoherenceJudge


def configure_logging(verbose: bool = False) -> None:
    """Configure logging - suppress noisy httpx logs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# Parse command-line arguments
def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Patent ranker - multi-signal patent search with MMR diversification",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--query", "-q",
        type=str,
        required=True,
        help="Free-text description of the patents you're looking for",
    )

    parser.add_argument(
        "--limit", "-n",
        type=int,
        default=10,
        help="Maximum number of results to return (default: 10)",
    )

    parser.add_argument(
        "--profile", "-p",
        type=str,
        default="standard",
        help="Weight profile: standard, enhanced or adaptive (default: standard)",
    )

    parser.add_argument(
        "--threshold", "-t",
        type=float,
        default=0.0,
        help="Minimum semantic similarity a result must have (default: 0)",
    )

    parser.add_argument(
        "--expand",
        action="store_true",
        help="Expand the query with related domain terms",
    )

    parser.add_argument(
        "--basic",
        action="store_true",
        help="Lexical search only, skip the scoring pipeline",
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default=None,
        help="Output file path (default: print to stdout)",
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging",
    )

    return parser.parse_args(argv)


# Main entry point of the entire program
async def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(args.verbose)

    try:
        request = build_request(
            query=args.query,
            limit=args.limit,
            profile=args.profile,
            semantic_threshold=args.threshold,
            use_query_expansion=args.expand,
            use_full_pipeline=not args.basic,
        )
    except InvalidRequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    settings = PipelineSettings.from_env()
    supabase = SupabaseClient(timeout=settings.retrieval_timeout)
    embedder = OpenAIEmbedder(timeout=settings.embedding_timeout)

    # Coherence judge is optional (reads ANTHROPIC_API_KEY from environment)
    llm_client = None
    judge = None
    if os.environ.get("ANTHROPIC_API_KEY"):
        llm_client = LLMClient(timeout=settings.coherence_timeout)
        judge = CoherenceJudge(llm_client)
        print("LLM client initialized", file=sys.stderr)
    else:
        print("Warning: ANTHROPIC_API_KEY not set, coherence falls back to neutral", file=sys.stderr)

    pipeline = RankingPipeline(
        lexical=SupabaseLexicalSearch(supabase),
        vector=SupabaseVectorSearch(supabase),
        embedder=embedder,
        judge=judge,
        graph_lookup=SupabaseGraphLookup(supabase),
        settings=settings,
    )

    try:
        response = await pipeline.search(request)
    except InvalidRequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        await supabase.close()
        await embedder.close()
        if llm_client:
            await llm_client.close()

    # Format output as JSON
    output = json.dumps(response.to_dict(), indent=2, ensure_ascii=False)

    if args.output:  # Write to file
        with open(args.output, "w", encoding="utf-8") as f:
            f.write(output)
        print(f"Results saved to {args.output}", file=sys.stderr)
    else:  # Print to stdout
        print(output)

    return 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
