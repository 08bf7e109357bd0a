import logging
from sqlalchemy import func
from sqlalchemy.orm import Session
from kb_pipeline.models import Article, utcnow

logger = logging.getLogger(__name__)


def _eligible(query):
    return query.filter(Article.vector_id.is_(None), Article.content.isnot(None))


def upsert_article(
    db: Session,
    url: str,
    title: str,
    content: str | None,
    category: str | None = None
) -> Article:
    """
    Insert or refresh the article keyed by url.

    Does not commit: the caller commits together with its job checkpoint.
    """
    article = db.query(Article).filter(Article.url == url).first()
    now = utcnow()

    if article is None:
        article = Article(url=url)
        db.add(article)

    article.title = title
    article.content = content
    article.category = category or "General"
    article.last_scraped_at = now
    db.flush()
    return article


def get_unvectorized_articles(db: Session, limit: int) -> list[Article]:
    """Articles with content and no vectorization reference, oldest first."""
    return (
        _eligible(db.query(Article))
        .order_by(Article.created_at.asc(), Article.id.asc())
        .limit(limit)
        .all()
    )


def count_unvectorized(db: Session) -> int:
    return _eligible(db.query(func.count(Article.id))).scalar() or 0


def mark_vectorized(db: Session, article: Article, vector_id: str):
    article.vector_id = vector_id
    article.last_indexed_at = utcnow()
    db.commit()


def reset_vectorization(db: Session) -> int:
    """Clear the vectorization reference on every article that has content."""
    count = (
        db.query(Article)
        .filter(Article.content.isnot(None), Article.vector_id.isnot(None))
        .update({Article.vector_id: None}, synchronize_session=False)
    )
    db.commit()
    logger.info(f"[ARTICLES] Reset vectorization on {count} articles")
    return count


def get_article_stats(db: Session) -> dict:
    total = db.query(func.count(Article.id)).scalar() or 0
    with_content = db.query(func.count(Article.id)).filter(Article.content.isnot(None)).scalar() or 0
    vectorized = db.query(func.count(Article.id)).filter(Article.vector_id.isnot(None)).scalar() or 0

    return {
        "total_articles": total,
        "with_content": with_content,
        "vectorized": vectorized,
        "pending_vectorization": count_unvectorized(db),
    }


def list_articles(db: Session, limit: int = 50, offset: int = 0) -> list[Article]:
    return (
        db.query(Article)
        .order_by(Article.last_scraped_at.desc(), Article.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
