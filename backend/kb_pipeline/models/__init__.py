from kb_pipeline.models.knowledge_base import Base, Article, ScrapeJob, VectorizationSchedule, utcnow

__all__ = ["Base", "Article", "ScrapeJob", "VectorizationSchedule", "utcnow"]
