import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable
from sqlalchemy.orm import Session
from kb_pipeline.config import (
    KB_BASE_URL,
    SCRAPE_DEFAULT_BATCH,
    SCRAPE_MAX_BATCH,
    SCRAPE_SUB_BATCH,
    INTER_BATCH_DELAY,
    MAX_CONTINUATIONS,
)
from kb_pipeline.errors import JobNotFoundError
from kb_pipeline.models import ScrapeJob, utcnow
from kb_pipeline.services.articles import upsert_article
from kb_pipeline.services.scraper import discover_article_urls, scrape_article

logger = logging.getLogger(__name__)


@dataclass
class ScrapeResult:
    job_id: str
    processed: int
    failed: int
    total: int
    is_complete: bool

    @property
    def next_batch(self) -> bool:
        return not self.is_complete


def job_result(job: ScrapeJob) -> ScrapeResult:
    return ScrapeResult(
        job_id=job.id,
        processed=job.processed_urls,
        failed=job.failed_urls,
        total=job.total_urls,
        is_complete=job.is_terminal,
    )


def get_job(db: Session, job_id: str) -> ScrapeJob:
    job = db.query(ScrapeJob).filter(ScrapeJob.id == job_id).first()
    if job is None:
        raise JobNotFoundError(f"Job {job_id} not found")
    return job


def _discover(db: Session, job: ScrapeJob, session, base_url: str):
    urls = discover_article_urls(base_url, session)
    job.urls = urls
    job.total_urls = len(urls)
    db.commit()
    logger.info(f"[SCRAPE] Job {job.id}: {len(urls)} URLs to process")


def _scrape_sub_batch(urls: list[str], session) -> tuple[list, int]:
    """Scrape urls concurrently. Returns (scraped articles, failure count)."""
    scraped = []
    failed = 0

    with ThreadPoolExecutor(max_workers=len(urls)) as executor:
        futures = {url: executor.submit(scrape_article, url, session) for url in urls}
        for url, future in futures.items():
            try:
                scraped.append(future.result())
            except Exception as e:
                failed += 1
                logger.error(f"[SCRAPE] Failed to process article {url}: {e}")

    return scraped, failed


def start_or_resume(
    db: Session,
    session,
    job_id: str | None = None,
    batch_size: int = SCRAPE_DEFAULT_BATCH,
    base_url: str = KB_BASE_URL,
    delay: float = INTER_BATCH_DELAY
) -> ScrapeResult:
    """
    Run one bounded batch of a scrape job, creating the job if needed.

    Args:
        db: Database session
        session: requests-compatible HTTP session used for page fetches
        job_id: Existing job to resume; a new job is created when None
        batch_size: URLs to attempt in this call (capped at SCRAPE_MAX_BATCH)
        base_url: Seed listing page for discovery
        delay: Seconds to sleep between sub-batches

    Returns:
        ScrapeResult with the job's cumulative counts
    """
    if job_id:
        job = get_job(db, job_id)
        if job.is_terminal:
            logger.info(f"[SCRAPE] Job {job.id} already {job.status}, nothing to resume")
            return job_result(job)
        logger.info(f"[SCRAPE] Resuming job {job.id} from index {job.offset}")
    else:
        job = ScrapeJob(status="running", started_at=utcnow())
        db.add(job)
        db.commit()
        logger.info(f"[SCRAPE] Created scraping job {job.id}")

    current_id = job.id
    try:
        return _run_batch(db, job, session, batch_size, base_url, delay)
    except Exception as e:
        db.rollback()
        logger.error(f"[SCRAPE] Job {current_id} aborted: {e}")
        try:
            mark_job_failed(db, current_id, str(e))
        except Exception as db_error:
            logger.error(f"[SCRAPE] Error updating job status: {db_error}")
        raise


def _run_batch(db: Session, job: ScrapeJob, session, batch_size: int, base_url: str, delay: float) -> ScrapeResult:
    if job.urls is None:
        _discover(db, job, session, base_url)

    urls = list(job.urls or [])
    limit = max(1, min(batch_size, SCRAPE_MAX_BATCH))
    start = job.offset
    batch = urls[start:start + limit]
    logger.info(f"[SCRAPE] Processing articles {start} to {start + len(batch)} of {len(urls)}")

    for i in range(0, len(batch), SCRAPE_SUB_BATCH):
        sub_batch = batch[i:i + SCRAPE_SUB_BATCH]
        scraped, failed = _scrape_sub_batch(sub_batch, session)

        for article in scraped:
            upsert_article(db, article.url, article.title, article.content, article.category)
        job.processed_urls += len(scraped)
        job.failed_urls += failed
        # article writes and the progress checkpoint land in one commit
        db.commit()

        logger.info(
            f"[SCRAPE] Job {job.id}: {job.processed_urls} processed, "
            f"{job.failed_urls} failed of {job.total_urls}"
        )

        if delay and i + SCRAPE_SUB_BATCH < len(batch):
            time.sleep(delay)

    if job.offset >= job.total_urls:
        job.status = "completed"
        job.completed_at = utcnow()
        db.commit()
        logger.info(
            f"[SCRAPE] Scraping completed. Processed: {job.processed_urls}, Failed: {job.failed_urls}"
        )
    else:
        logger.info(f"[SCRAPE] Batch completed at {job.offset}/{job.total_urls}, continuing...")

    return job_result(job)


def continue_scrape_job(
    session_factory: Callable[[], Session],
    session,
    job_id: str,
    batch_size: int,
    expected_offset: int,
    delay: float = INTER_BATCH_DELAY
):
    """
    Drive a scrape job to completion, one batch at a time.

    Exits without work if the job is terminal or no longer sits at
    expected_offset (another runner picked it up).
    """
    db = session_factory()
    try:
        for _ in range(MAX_CONTINUATIONS):
            db.expire_all()
            job = db.query(ScrapeJob).filter(ScrapeJob.id == job_id).first()
            if job is None or job.is_terminal:
                return
            if job.offset != expected_offset:
                logger.warning(
                    f"[SCRAPE] Job {job_id} moved to offset {job.offset} "
                    f"(expected {expected_offset}), leaving it to its current runner"
                )
                return

            result = start_or_resume(db, session, job_id, batch_size, delay=delay)
            if result.is_complete:
                return
            expected_offset = result.processed + result.failed

        logger.warning(f"[SCRAPE] Job {job_id} still running after {MAX_CONTINUATIONS} continuations")

    except Exception as e:
        db.rollback()
        logger.exception(f"[SCRAPE] Continuation of job {job_id} failed")
        try:
            mark_job_failed(db, job_id, str(e))
        except Exception as db_error:
            logger.error(f"[SCRAPE] Error updating job status: {db_error}")
        raise
    finally:
        db.close()


def mark_job_failed(db: Session, job_id: str, message: str):
    job = db.query(ScrapeJob).filter(ScrapeJob.id == job_id).first()
    if job and not job.is_terminal:
        job.status = "failed"
        job.error_message = message
        job.completed_at = utcnow()
        db.commit()


def list_jobs(db: Session, limit: int = 10) -> list[ScrapeJob]:
    return db.query(ScrapeJob).order_by(ScrapeJob.created_at.desc()).limit(limit).all()


def delete_job(db: Session, job_id: str):
    job = get_job(db, job_id)
    db.delete(job)
    db.commit()
    logger.info(f"[JOBS] Deleted scraping job {job_id}")


def close_stale_jobs(
    db: Session,
    status: str = "completed",
    message: str = "Job automatically closed - was stuck in running state"
) -> int:
    """Force every running job without a completion timestamp to a terminal status."""
    if status not in ("completed", "failed"):
        raise ValueError(f"Stale jobs can only be closed as completed or failed, not {status!r}")

    count = (
        db.query(ScrapeJob)
        .filter(ScrapeJob.status == "running", ScrapeJob.completed_at.is_(None))
        .update(
            {
                ScrapeJob.status: status,
                ScrapeJob.completed_at: utcnow(),
                ScrapeJob.error_message: message,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    logger.info(f"[JOBS] Closed {count} stale jobs as {status}")
    return count
