"""Shared fixtures: a throwaway SQLite database and in-memory fakes for every external service."""

import os
import tempfile
import threading

_DB_DIR = tempfile.mkdtemp(prefix="kb_pipeline_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"

import pytest
import requests
from fastapi.testclient import TestClient

from kb_pipeline import config, database
from kb_pipeline.dependencies import get_embedding_client, get_http_session, get_vector_store
from kb_pipeline.models import Article, Base

BASE_URL = "https://help.example.com/support/solutions"
ORIGIN = "https://help.example.com"

ARTICLE_BODY = (
    "To connect your calendar, open Settings and choose Calendars. "
    "Pick the provider you use, sign in, and grant access so appointments sync both ways. "
    "Changes can take a few minutes to appear."
)


def article_page(title: str, body: str = ARTICLE_BODY, breadcrumb: str | None = None) -> str:
    nav = ""
    if breadcrumb:
        crumbs = "".join(f"<li><a href='#'>{c}</a></li>" for c in breadcrumb.split("/"))
        nav = f'<nav aria-label="breadcrumb"><ol>{crumbs}</ol></nav>'
    return (
        f"<html><head><title>{title}</title><style>.x{{color:red}}</style></head>"
        f"<body>{nav}<script>var tracking = 1;</script>"
        f"<article><h1>{title}</h1><p>{body}</p></article></body></html>"
    )


def listing_page(paths: list[str]) -> str:
    links = "".join(f'<a href="{p}">link</a>' for p in paths)
    return f"<html><body>{links}</body></html>"


class FakeResponse:
    def __init__(self, text: str = "", status_code: int = 200, payload: dict | None = None):
        self.text = text
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return self._payload

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeHttpSession:
    """Serves canned pages keyed by URL; unknown URLs answer 404."""

    def __init__(self, pages: dict | None = None):
        self.pages = pages or {}
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def get(self, url, timeout=None, headers=None):
        with self._lock:
            self.calls.append(url)
        page = self.pages.get(url)
        if isinstance(page, Exception):
            raise page
        if isinstance(page, FakeResponse):
            return page
        if page is None:
            return FakeResponse("not found", status_code=404)
        return FakeResponse(page)


class FakeEmbedder:
    def __init__(self, fail_on: tuple[str, ...] = ()):
        self.fail_on = fail_on
        self.calls = []
        self._lock = threading.Lock()

    def _vector(self, text: str) -> list[float]:
        with self._lock:
            self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("OpenAI error: 429 rate limited")
        return [0.1] * 8

    def embed(self, text: str) -> list[float]:
        return self._vector(text)

    def embed_query(self, text: str) -> list[float]:
        return self._vector(text)


class FakeVectorStore:
    def __init__(self, exists: bool = True, hits: list[dict] | None = None, fail_ids: tuple = ()):
        self.collection = "knowledge_base"
        self.exists = exists
        self.hits = hits or []
        self.fail_ids = fail_ids
        self.points = {}
        self.created = 0
        self.searches = []
        self._lock = threading.Lock()

    def ensure_collection(self, size=config.EMBEDDING_DIMENSION):
        if self.exists:
            return False
        self.exists = True
        self.created += 1
        return True

    def upsert_point(self, point_id, vector, payload):
        if point_id in self.fail_ids:
            raise RuntimeError("Qdrant error: 500")
        with self._lock:
            self.points[point_id] = {"vector": vector, "payload": payload}

    def search(self, vector, limit, score_threshold):
        self.searches.append({"vector": vector, "limit": limit, "score_threshold": score_threshold})
        return self.hits[:limit]

    def collection_stats(self):
        return {
            "name": self.collection,
            "vectors_size": config.EMBEDDING_DIMENSION,
            "distance": "Cosine",
            "points_count": len(self.points),
            "status": "green",
        }


@pytest.fixture(autouse=True)
def no_delay(monkeypatch):
    monkeypatch.setattr(config, "INTER_BATCH_DELAY", 0)
    monkeypatch.setattr(config, "KB_BASE_URL", BASE_URL)


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def http():
    return FakeHttpSession()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def store():
    return FakeVectorStore()


@pytest.fixture
def client(db, http, embedder, store):
    from kb_pipeline.main import app

    app.dependency_overrides[get_http_session] = lambda: http
    app.dependency_overrides[get_embedding_client] = lambda: embedder
    app.dependency_overrides[get_vector_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_article(db):
    def _make(url: str, title: str = "Article", content: str | None = ARTICLE_BODY, **fields) -> Article:
        article = Article(url=url, title=title, content=content, **fields)
        db.add(article)
        db.commit()
        return article

    return _make
