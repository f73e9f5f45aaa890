"""
Catalog Module

Product repository, stock ledger, catalog view pipeline and media rules.
"""
from .repository import (
    ProductInput,
    ProductRecord,
    ProductRepository,
    StockLedger,
    parse_product_form,
)
from .view import SORT_KEYS, CatalogBrowser, CatalogPage, build_catalog_view
from .media import LocalMediaStore, MediaStore, classify_media, validate_media

__all__ = [
    "ProductInput",
    "ProductRecord",
    "ProductRepository",
    "StockLedger",
    "parse_product_form",
    "SORT_KEYS",
    "CatalogBrowser",
    "CatalogPage",
    "build_catalog_view",
    "LocalMediaStore",
    "MediaStore",
    "classify_media",
    "validate_media",
]
