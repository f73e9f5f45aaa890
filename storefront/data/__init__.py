"""
Data Generation Module
"""
from .seed import product_inputs, seed

__all__ = [
    "product_inputs",
    "seed",
]
