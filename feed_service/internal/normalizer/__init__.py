"""
Normalization package.
"""
from .size_normalizer import SizeNormalizer, ONE_SIZE

__all__ = ["SizeNormalizer", "ONE_SIZE"]
