"""Repository layer for moodseed.

Provides data access abstractions for all domain entities.
No base classes - each repository is self-contained.
"""

from moodseed.repositories.catalog import StyleRepository, SubCategoryRepository
from moodseed.repositories.credit import CreditTransactionRepository
from moodseed.repositories.execution import CandidateSet, ExecutionRepository

__all__ = [
    "ExecutionRepository",
    "CandidateSet",
    "CreditTransactionRepository",
    "SubCategoryRepository",
    "StyleRepository",
]
