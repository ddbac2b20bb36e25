"""
Strata Repositories — generic CRUD plus search and bulk-insert capabilities.
"""

from .base import Entity, Repository, RepositoryCore
from .search import Searchable, FullTextSearch, SearchableRepository
from .batch import BulkInsertable, BulkInsert, BatchRepository

__all__ = [
    "Entity",
    "Repository",
    "RepositoryCore",
    "Searchable",
    "FullTextSearch",
    "SearchableRepository",
    "BulkInsertable",
    "BulkInsert",
    "BatchRepository",
]
