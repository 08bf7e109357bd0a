import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kb_pipeline.db")

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY")
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "knowledge_base")

KB_BASE_URL = os.getenv("KB_BASE_URL", "https://help.gohighlevel.com/support/solutions")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

EMBEDDING_MODEL = "text-embedding-3-small"
EMBEDDING_DIMENSION = 1536
EMBEDDING_INPUT_LIMIT = 8000
PAYLOAD_CONTENT_LIMIT = 2000
SCORE_THRESHOLD = 0.7

SCRAPE_DEFAULT_BATCH = 20
SCRAPE_MAX_BATCH = 50
SCRAPE_SUB_BATCH = 3
MIN_CONTENT_LENGTH = 100

VECTORIZE_DEFAULT_BATCH = 50
VECTORIZE_SUB_BATCH = 3

INTER_BATCH_DELAY = 0.5
REQUEST_TIMEOUT = 30
MAX_CONTINUATIONS = 100

USER_AGENT = "kb-pipeline/1.0 (+knowledge base scraper)"
