"""
Models package - Import all models so Base.metadata knows every table
"""
from dashboard.database import Base

from dashboard.models.document import Document

__all__ = [
    "Base",
    "Document",
]
