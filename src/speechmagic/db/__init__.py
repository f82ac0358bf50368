"""
Generation Ledger Persistence.

    - models.py: SQLAlchemy ORM model for generation records
    - ledger.py: Owner-scoped repository over the records table
"""

from .ledger import GenerationLedger
from .models import Base, GenerationRecord

__all__ = ["Base", "GenerationLedger", "GenerationRecord"]
