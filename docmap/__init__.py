"""docmap: document ingestion, AI extraction and systems-map building."""

__version__ = "0.1.0"
