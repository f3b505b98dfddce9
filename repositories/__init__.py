"""
Repository modules for database operations
"""

from .base import BaseRepository
from .product_repository import ProductRepository

__all__ = [
    'BaseRepository',
    'ProductRepository',
]
