from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, JSON, Integer, Index
from sqlalchemy.orm import declarative_base
import uuid

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Article(Base):
    """Scraped help-center article"""
    __tablename__ = "kb_articles"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(Text, nullable=False)
    url = Column(Text, nullable=False, unique=True)
    content = Column(Text, nullable=True)
    category = Column(Text, nullable=True)
    vector_id = Column(String, nullable=True)
    last_scraped_at = Column(DateTime(timezone=True))
    last_indexed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_kb_articles_last_scraped', 'last_scraped_at'),
        Index('idx_kb_articles_vector_id', 'vector_id'),
    )


class ScrapeJob(Base):
    """Tracks knowledge base scraping jobs across continuations"""
    __tablename__ = "scraping_jobs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    status = Column(String, nullable=False, default="pending")
    urls = Column(JSON)
    total_urls = Column(Integer, default=0, nullable=False)
    processed_urls = Column(Integer, default=0, nullable=False)
    failed_urls = Column(Integer, default=0, nullable=False)
    error_message = Column(Text)
    started_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_scraping_jobs_status', 'status'),
        Index('idx_scraping_jobs_created_at', 'created_at'),
    )

    @property
    def offset(self) -> int:
        """Number of discovered URLs already attempted"""
        return (self.processed_urls or 0) + (self.failed_urls or 0)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed")


class VectorizationSchedule(Base):
    """Progress of the auto-scheduled vectorization runs"""
    __tablename__ = "vectorization_schedules"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    schedule_name = Column(String, nullable=False, unique=True)
    last_run_at = Column(DateTime(timezone=True))
    next_run_at = Column(DateTime(timezone=True))
    articles_processed = Column(Integer, default=0)
    articles_failed = Column(Integer, default=0)
    status = Column(String, default="pending")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
