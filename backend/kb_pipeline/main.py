import logging
import traceback
from datetime import datetime
from fastapi import FastAPI, BackgroundTasks, Depends, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session
from kb_pipeline import config, database
from kb_pipeline.database import get_db, init_db
from kb_pipeline.dependencies import get_embedding_client, get_http_session, get_vector_store
from kb_pipeline.errors import ConfigurationError, EmptyQueryError, JobNotFoundError, VectorStoreError
from kb_pipeline.services.articles import get_article_stats, list_articles
from kb_pipeline.services.scrape_jobs import (
    close_stale_jobs,
    continue_scrape_job,
    delete_job,
    list_jobs,
    start_or_resume,
)
from kb_pipeline.services.schedules import list_schedules
from kb_pipeline.services.search import search_articles
from kb_pipeline.services.vectorizer import continue_vectorization, run_vectorization
from kb_pipeline.utils import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Knowledge Base Pipeline API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

init_db()


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request, exc: ConfigurationError):
    logger.error(f"Configuration error: {exc}")
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc), "stack": stack})


@app.exception_handler(EmptyQueryError)
async def empty_query_handler(request, exc: EmptyQueryError):
    return JSONResponse(status_code=400, content={"error": str(exc)})


class ScrapeRequest(BaseModel):
    resume_job_id: str | None = None
    batch_size: int = Field(default=config.SCRAPE_DEFAULT_BATCH, ge=1)


class ScrapeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    job_id: str = Field(alias="jobId")
    processed: int
    failed: int
    total: int
    is_complete: bool = Field(alias="isComplete")
    next_batch: bool = Field(alias="nextBatch")


class VectorizeRequest(BaseModel):
    batch_size: int = Field(default=config.VECTORIZE_DEFAULT_BATCH, ge=1)
    auto_scheduled: bool = False
    force_all: bool = False


class VectorizeResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    processed: int
    failed: int
    remaining: int
    is_complete: bool = Field(alias="isComplete")
    next_batch: bool = Field(alias="nextBatch")


class SearchRequest(BaseModel):
    query: str = ""
    limit: int = Field(default=5, ge=1)


class SearchResult(BaseModel):
    id: str | None
    title: str | None
    url: str | None
    category: str | None
    content_preview: str
    similarity_score: float
    created_at: str | None
    updated_at: str | None


class SearchResponse(BaseModel):
    success: bool = True
    query: str
    results: list[SearchResult]
    total_found: int


class JobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    status: str
    total_urls: int
    processed_urls: int
    failed_urls: int
    error_message: str | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime


class CloseStaleRequest(BaseModel):
    status: str = "completed"
    message: str = "Job automatically closed - was stuck in running state"


class ScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    schedule_name: str
    last_run_at: datetime | None
    next_run_at: datetime | None
    articles_processed: int | None
    articles_failed: int | None
    status: str | None


class ArticleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    url: str
    category: str | None
    vector_id: str | None
    last_scraped_at: datetime | None
    last_indexed_at: datetime | None


def continue_scrape_job_and_close(http, job_id: str, batch_size: int, expected_offset: int, delay: float):
    """Background continuation; owns the HTTP session from here on."""
    try:
        continue_scrape_job(database.SessionLocal, http, job_id, batch_size, expected_offset, delay)
    finally:
        http.close()


@app.post("/scrape", response_model=ScrapeResponse)
def scrape_knowledge_base(
    background_tasks: BackgroundTasks,
    request: ScrapeRequest | None = None,
    db: Session = Depends(get_db),
    http=Depends(get_http_session)
):
    """
    Run one batch of a scrape job (new or resumed).
    The rest of the job continues in the background.
    """
    request = request or ScrapeRequest()
    logger.info(
        f"Starting knowledge base scraping (resume_job_id={request.resume_job_id}, "
        f"batch_size={request.batch_size})"
    )

    try:
        result = start_or_resume(
            db,
            http,
            job_id=request.resume_job_id,
            batch_size=request.batch_size,
            base_url=config.KB_BASE_URL,
            delay=config.INTER_BATCH_DELAY,
        )
    except Exception as e:
        logger.exception("Error in scrape endpoint")
        http.close()
        return JSONResponse(status_code=500, content={"error": str(e)})

    if result.next_batch:
        background_tasks.add_task(
            continue_scrape_job_and_close,
            http,
            result.job_id,
            request.batch_size,
            result.processed + result.failed,
            config.INTER_BATCH_DELAY,
        )
    else:
        http.close()

    return ScrapeResponse(
        job_id=result.job_id,
        processed=result.processed,
        failed=result.failed,
        total=result.total,
        is_complete=result.is_complete,
        next_batch=result.next_batch,
    )


@app.post("/vectorize", response_model=VectorizeResponse)
def vectorize_articles(
    background_tasks: BackgroundTasks,
    request: VectorizeRequest | None = None,
    db: Session = Depends(get_db),
    embedder=Depends(get_embedding_client),
    store=Depends(get_vector_store)
):
    """
    Vectorize one batch of articles; the remaining backlog drains in the background.
    """
    request = request or VectorizeRequest()

    try:
        result = run_vectorization(
            db,
            embedder,
            store,
            batch_size=request.batch_size,
            auto_scheduled=request.auto_scheduled,
            force_all=request.force_all,
            delay=config.INTER_BATCH_DELAY,
        )
    except Exception as e:
        logger.exception("Error in vectorize endpoint")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e), "stack": traceback.format_exc()},
        )

    if result.next_batch:
        logger.info("Auto-continuing vectorization for remaining articles")
        background_tasks.add_task(
            continue_vectorization,
            database.SessionLocal,
            embedder,
            store,
            request.batch_size,
            request.auto_scheduled,
            config.INTER_BATCH_DELAY,
        )

    return VectorizeResponse(
        processed=result.processed,
        failed=result.failed,
        remaining=result.remaining,
        is_complete=result.is_complete,
        next_batch=result.next_batch,
    )


def search_query(request: SearchRequest) -> SearchRequest:
    """Reject blank queries before any client is built."""
    if not request.query.strip():
        raise EmptyQueryError("Query is required")
    return request


@app.post("/search", response_model=SearchResponse)
def search_knowledge_base(
    request: SearchRequest = Depends(search_query),
    embedder=Depends(get_embedding_client),
    store=Depends(get_vector_store)
):
    """Semantic search over the vectorized knowledge base."""
    try:
        results = search_articles(request.query, embedder, store, limit=request.limit)
    except EmptyQueryError:
        raise
    except Exception as e:
        logger.exception("Error in search endpoint")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return SearchResponse(
        query=request.query,
        results=results,
        total_found=len(results),
    )


@app.get("/stats")
def get_stats(db: Session = Depends(get_db), store=Depends(get_vector_store)):
    """Article counts plus vector collection info"""
    try:
        vector_stats = store.collection_stats()
    except VectorStoreError as e:
        logger.error(f"Vector store stats error: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})

    return {
        "success": True,
        "articles": get_article_stats(db),
        "vector_store": vector_stats,
    }


@app.get("/articles", response_model=list[ArticleOut])
def get_articles(limit: int = 50, offset: int = 0, db: Session = Depends(get_db)):
    return list_articles(db, limit=limit, offset=offset)


@app.get("/jobs", response_model=list[JobOut])
def get_jobs(limit: int = 10, db: Session = Depends(get_db)):
    """Most recent scraping jobs"""
    return list_jobs(db, limit=limit)


@app.delete("/jobs/{job_id}")
def remove_job(job_id: str, db: Session = Depends(get_db)):
    try:
        delete_job(db, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}


@app.post("/jobs/close-stale")
def close_stale(request: CloseStaleRequest, db: Session = Depends(get_db)):
    """Force stuck running jobs to a terminal status."""
    try:
        closed = close_stale_jobs(db, status=request.status, message=request.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "closed": closed}


@app.get("/schedules", response_model=list[ScheduleOut])
def get_schedules(db: Session = Depends(get_db)):
    return list_schedules(db)


@app.get("/")
async def root():
    return {"message": "Knowledge Base Pipeline API is running"}


if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
