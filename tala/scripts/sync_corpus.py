"""
Tala - Corpus Sync & Context Preview Script
=============================================
Admin CLI that:
    1. Loads settings (fail-fast on configuration errors).
    2. Builds the production ``ContextEngine`` (MongoDB + embeddings).
    3. Forces one corpus sync.
    4. Optionally assembles and prints the context for a query.
    5. Prints cache / sync statistics with a timing breakdown.

Flags:
    --query TEXT        Assemble and print the context for TEXT.
    --max-tokens N      Token budget for --query (default: DEFAULT_MAX_TOKENS).
    --max-sections N    Section cap for --query (default: DEFAULT_MAX_SECTIONS).
    --suggest-more      Append the follow-up suggestions for identity queries.
    --ensure-indexes    Create the response-cache mirror indexes first.

Usage:
    python -m tala.scripts.sync_corpus
    python -m tala.scripts.sync_corpus --query "when is enrollment"
    python -m tala.scripts.sync_corpus --query "what is dorsu" --suggest-more
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sync_corpus", description="Tala: force a corpus sync and preview an assembled context.")
    parser.add_argument("--query", default=None, help="Assemble and print the context for this query.")
    parser.add_argument("--max-tokens", type=int, default=None, help="Token budget for --query.")
    parser.add_argument("--max-sections", type=int, default=None, help="Section cap for --query.")
    parser.add_argument("--suggest-more", action="store_true", default=False, help="Append follow-up suggestions for identity queries.")
    parser.add_argument("--ensure-indexes", action="store_true", default=False, help="Create the response-cache mirror indexes before syncing.")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

async def _run(args: argparse.Namespace) -> int:
    t_start = time.perf_counter()

    # ── 0. Load settings + .env (timed) ────────────────────────────────
    t_settings = time.perf_counter()
    try:
        from tala.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error, check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1
    settings_ms = (time.perf_counter() - t_settings) * 1000

    from tala.src.core.rag_engine import ContextEngine
    from tala.src.utils.logger import get_logger
    logger = get_logger(__name__)

    _print_header(settings)

    # ── 1. Build engine (timed) ────────────────────────────────────────
    t_engine = time.perf_counter()
    engine = ContextEngine.from_settings()
    engine_ms = (time.perf_counter() - t_engine) * 1000

    if args.ensure_indexes:
        from tala.src.database.mongo_store import MongoResponseCacheMirror

        await MongoResponseCacheMirror().ensure_indexes()
        logger.info("Response-cache mirror indexes ensured.")

    # ── 2. Force sync (timed) ──────────────────────────────────────────
    t_sync = time.perf_counter()
    published = await engine.force_sync_mongodb()
    sync_ms = (time.perf_counter() - t_sync) * 1000
    if not published:
        logger.warning("Sync did not publish a new snapshot; see log above.")

    # ── 3. Optional context preview ────────────────────────────────────
    context_ms = 0.0
    if args.query:
        t_context = time.perf_counter()
        context = await engine.get_context_for_topic(args.query, max_tokens=args.max_tokens, max_sections=args.max_sections, suggest_more=args.suggest_more)
        context_ms = (time.perf_counter() - t_context) * 1000
        print("-" * 60)
        print(context)
        print("-" * 60)

    _print_footer(engine.get_cache_stats(), settings_ms, engine_ms, sync_ms, context_ms, time.perf_counter() - t_start)
    return 0 if published else 2


def main(argv: list[str] | None = None) -> None:
    sys.exit(asyncio.run(_run(_parse_args(argv))))


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object) -> None:
    mongo_uri_val = settings.MONGO_URI.get_secret_value()  # type: ignore[attr-defined]
    mongo_masked = mongo_uri_val.split("@")[-1] if "@" in mongo_uri_val else mongo_uri_val

    print()
    print("=" * 60)
    print("  TALA: Corpus Sync")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")                          # type: ignore[attr-defined]
    print(f"  MongoDB      : {mongo_masked} (db: {settings.MONGO_DB_NAME})")  # type: ignore[attr-defined]
    print(f"  Collection   : {settings.CHUNKS_COLLECTION}")            # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL} (D={settings.EMBEDDING_DIMENSION})")  # type: ignore[attr-defined]
    print(f"  API keys     : {len(settings.api_keys)} configured")     # type: ignore[attr-defined]
    print("=" * 60)
    print()


def _print_footer(stats: dict[str, object], settings_ms: float, engine_ms: float, sync_ms: float, context_ms: float, elapsed: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Corpus chunks        : {stats['corpus_chunks']}")
    print(f"  Last sync at         : {stats['last_sync_at'] or 'never'}")
    print(f"  Cache keys           : {stats['keys']}")
    print(f"  Cache hits / misses  : {stats['hits']} / {stats['misses']}")
    print("-" * 60)
    print("  TIMING BREAKDOWN")
    print("-" * 60)
    print(f"  Settings + .env load : {settings_ms:>8.1f}ms")
    print(f"  Engine init          : {engine_ms:>8.1f}ms")
    print(f"  Corpus sync          : {sync_ms:>8.1f}ms")
    print(f"  Context assembly     : {context_ms:>8.1f}ms")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
