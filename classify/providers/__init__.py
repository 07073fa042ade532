"""
Provider interfaces for classify's external collaborators.

- Classifiers (text -> up to five tags)
- Document fetching (link -> text)

Concrete providers are auto-registered when this module is imported.
"""

from .base import (
    Document,
    DocumentProvider,
    ClassifierProvider,
    ProviderRegistry,
    get_registry,
)

# Import concrete providers to trigger registration
from . import documents
from . import llm

__all__ = [
    # Protocols
    "ClassifierProvider",
    "DocumentProvider",
    # Data types
    "Document",
    # Registry
    "ProviderRegistry",
    "get_registry",
]
