import logging
import requests
from kb_pipeline.config import EMBEDDING_DIMENSION, REQUEST_TIMEOUT
from kb_pipeline.errors import VectorStoreError

logger = logging.getLogger(__name__)


class VectorStoreClient:
    """
    Minimal client for a Qdrant-compatible REST API, bound to one collection.

    Args:
        base_url: Root URL of the vector store
        api_key: Value sent in the api-key header
        collection: Collection name used by every call
        session: Optional requests.Session (substituted in tests)
    """

    def __init__(self, base_url: str, api_key: str, collection: str, session=None):
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.session = session or requests.Session()
        self.headers = {
            "api-key": api_key,
            "Content-Type": "application/json",
        }

    def _url(self, suffix: str = "") -> str:
        return f"{self.base_url}/collections/{self.collection}{suffix}"

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(
                method, url, headers=self.headers, timeout=REQUEST_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            raise VectorStoreError(f"Vector store unreachable: {e}") from e
        return response

    def _raise_for_status(self, response: requests.Response, action: str):
        if not response.ok:
            raise VectorStoreError(
                f"Vector store {action} failed: {response.status_code} {response.text}",
                status_code=response.status_code,
            )

    def get_collection(self) -> dict | None:
        """Return collection metadata, or None if it does not exist."""
        response = self._request("GET", self._url())
        if response.status_code == 404:
            return None
        self._raise_for_status(response, "collection lookup")
        return response.json().get("result") or {}

    def ensure_collection(self, size: int = EMBEDDING_DIMENSION) -> bool:
        """Create the collection with cosine distance if missing. Returns True if created."""
        if self.get_collection() is not None:
            return False

        logger.info(f"[QDRANT] Creating collection {self.collection} (size={size})")
        response = self._request(
            "PUT",
            self._url(),
            json={"vectors": {"size": size, "distance": "Cosine"}},
        )
        self._raise_for_status(response, "collection create")
        return True

    def upsert_point(self, point_id: str, vector: list[float], payload: dict):
        response = self._request(
            "PUT",
            self._url("/points"),
            params={"wait": "true"},
            json={"points": [{"id": point_id, "vector": vector, "payload": payload}]},
        )
        self._raise_for_status(response, "upsert")

    def search(self, vector: list[float], limit: int, score_threshold: float) -> list[dict]:
        response = self._request(
            "POST",
            self._url("/points/search"),
            json={
                "vector": vector,
                "limit": limit,
                "with_payload": True,
                "score_threshold": score_threshold,
            },
        )
        self._raise_for_status(response, "search")
        return response.json().get("result") or []

    def collection_stats(self) -> dict:
        response = self._request("GET", self._url())
        self._raise_for_status(response, "collection lookup")
        result = response.json().get("result") or {}
        vectors = result.get("config", {}).get("params", {}).get("vectors", {}) or {}

        return {
            "name": self.collection,
            "vectors_size": vectors.get("size"),
            "distance": vectors.get("distance"),
            "points_count": result.get("points_count"),
            "status": result.get("status"),
        }
