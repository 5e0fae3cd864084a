"""Public interface definitions for every external dependency of docmap.

Language models, persistence and blob storage are accessed exclusively
through the abstract base classes defined here.  Concrete adapters live in
``docmap/providers/`` and are wired together in ``docmap/main.py``, which
also lets tests inject fakes without touching a network.

    Interface          ->  Concrete implementations
    ILLMProvider       ->  AnthropicLLMProvider, OpenAILLMProvider,
                           MoonshotLLMProvider
    IStorageProvider   ->  InMemoryStorageProvider, SQLiteStorageProvider
    IBlobProvider      ->  LocalBlobProvider
"""

from docmap.interfaces.blob_provider import IBlobProvider
from docmap.interfaces.llm_provider import ILLMProvider
from docmap.interfaces.storage_provider import IStorageProvider

__all__ = [
    "IBlobProvider",
    "ILLMProvider",
    "IStorageProvider",
]
