"""Help-center knowledge base: scraping, vectorization and semantic search."""

__version__ = "0.1.0"
