"""Command line entry point for running the pipeline outside the API (e.g. from cron)."""

import argparse
import json
import logging
import sys

from kb_pipeline import config
from kb_pipeline.database import SessionLocal, init_db
from kb_pipeline.dependencies import get_embedding_client, get_http_session, get_vector_store
from kb_pipeline.errors import KnowledgeBaseError
from kb_pipeline.services.scrape_jobs import (
    close_stale_jobs,
    continue_scrape_job,
    get_job,
    job_result,
    start_or_resume,
)
from kb_pipeline.services.schedules import seed_schedules
from kb_pipeline.services.search import search_articles
from kb_pipeline.services.vectorizer import continue_vectorization, run_vectorization
from kb_pipeline.utils import setup_logging

logger = logging.getLogger(__name__)


def _scrape(args: argparse.Namespace) -> None:
    with get_http_session() as http:
        db = SessionLocal()
        try:
            result = start_or_resume(
                db,
                http,
                job_id=args.resume_job_id,
                batch_size=args.batch_size,
                base_url=config.KB_BASE_URL,
                delay=config.INTER_BATCH_DELAY,
            )
        finally:
            db.close()

        if result.next_batch and not args.single_batch:
            continue_scrape_job(
                SessionLocal,
                http,
                result.job_id,
                args.batch_size,
                result.processed + result.failed,
                config.INTER_BATCH_DELAY,
            )
            db = SessionLocal()
            try:
                result = job_result(get_job(db, result.job_id))
            finally:
                db.close()

    logger.info(
        f"[SCRAPE] Job {result.job_id}: processed={result.processed} failed={result.failed} "
        f"total={result.total} complete={result.is_complete}"
    )


def _vectorize(args: argparse.Namespace) -> None:
    embedder = get_embedding_client()
    store = get_vector_store()
    db = SessionLocal()
    try:
        result = run_vectorization(
            db,
            embedder,
            store,
            batch_size=args.batch_size,
            auto_scheduled=args.auto_scheduled,
            force_all=args.force_all,
            delay=config.INTER_BATCH_DELAY,
        )
    finally:
        db.close()

    logger.info(
        f"[VECTORIZE] Vectorized {result.processed} articles "
        f"({result.failed} failed, {result.remaining} remaining)"
    )
    if result.next_batch and not args.single_batch:
        continue_vectorization(
            SessionLocal, embedder, store, args.batch_size, args.auto_scheduled, config.INTER_BATCH_DELAY
        )


def _search(args: argparse.Namespace) -> None:
    results = search_articles(args.query, get_embedding_client(), get_vector_store(), limit=args.limit)
    print(json.dumps(results, indent=2, ensure_ascii=False))


def _close_stale(args: argparse.Namespace) -> None:
    db = SessionLocal()
    try:
        closed = close_stale_jobs(db, status=args.status, message=args.message)
    finally:
        db.close()
    logger.info(f"[JOBS] Closed {closed} stale jobs")


def _seed(args: argparse.Namespace) -> None:
    db = SessionLocal()
    try:
        created = seed_schedules(db)
    finally:
        db.close()
    logger.info(f"[SCHEDULE] Created {created} schedules")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kb-pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scrape = subparsers.add_parser("scrape", help="Scrape help-center articles")
    scrape.add_argument("--resume-job-id", default=None, help="Resume an existing scraping job")
    scrape.add_argument(
        "--batch-size",
        type=int,
        default=config.SCRAPE_DEFAULT_BATCH,
        help=f"URLs per batch (default: {config.SCRAPE_DEFAULT_BATCH}, max {config.SCRAPE_MAX_BATCH})",
    )
    scrape.add_argument("--single-batch", action="store_true", help="Stop after one batch")
    scrape.set_defaults(func=_scrape)

    vectorize = subparsers.add_parser("vectorize", help="Embed un-vectorized articles")
    vectorize.add_argument(
        "--batch-size",
        type=int,
        default=config.VECTORIZE_DEFAULT_BATCH,
        help=f"Articles per batch (default: {config.VECTORIZE_DEFAULT_BATCH})",
    )
    vectorize.add_argument("--auto-scheduled", action="store_true", help="Record the run on the schedule table")
    vectorize.add_argument("--force-all", action="store_true", help="Re-embed every article")
    vectorize.add_argument("--single-batch", action="store_true", help="Stop after one batch")
    vectorize.set_defaults(func=_vectorize)

    search = subparsers.add_parser("search", help="Semantic search")
    search.add_argument("query")
    search.add_argument("--limit", type=int, default=5)
    search.set_defaults(func=_search)

    stale = subparsers.add_parser("close-stale-jobs", help="Close scraping jobs stuck in running state")
    stale.add_argument("--status", choices=["completed", "failed"], default="completed")
    stale.add_argument(
        "--message",
        default="Job automatically closed - was stuck in running state",
    )
    stale.set_defaults(func=_close_stale)

    seed = subparsers.add_parser("seed-schedules", help="Create the auto-vectorization schedule rows")
    seed.set_defaults(func=_seed)

    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging()
    args = build_parser().parse_args(argv)
    init_db()

    try:
        args.func(args)
    except KnowledgeBaseError as e:
        logger.error(f"[CLI] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
