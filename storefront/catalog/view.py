"""
Catalog View Pipeline

Search, sort and paginate the public product listing. The pipeline itself
is pure; CatalogBrowser keeps the interactive state (sort key, search text,
current page) and its reset rules.
"""

import locale
import math
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from storefront.catalog.repository import DEFAULT_PRIORITY, ProductRecord
from storefront.config import get_settings
from storefront.database.models import as_utc
from storefront.errors import ValidationFailedError

logger = structlog.get_logger(__name__)

PAGE_SIZE = 12
DEFAULT_SORT = "priority"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _created(product: ProductRecord) -> datetime:
    return as_utc(product.created_at) or _EPOCH


def _priority(product: ProductRecord) -> int:
    return product.priority if product.priority is not None else DEFAULT_PRIORITY


def configure_collation(name: Optional[str] = None) -> str:
    """
    Select the collation used for name sorting.

    Falls back to the process default when the configured locale is not
    installed. Returns the locale actually in effect.
    """
    name = name or get_settings().catalog.collation_locale
    try:
        return locale.setlocale(locale.LC_COLLATE, name)
    except locale.Error:
        current = locale.setlocale(locale.LC_COLLATE)
        logger.warning("Collation locale unavailable, using default", requested=name, active=current)
        return current


def _base_letters(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _name_key(product: ProductRecord) -> Tuple[str, str, str]:
    # accents only break ties between otherwise equal names, so "Éclair" sits with the e's
    folded = (product.name or "").casefold()
    return locale.strxfrm(_base_letters(folded)), locale.strxfrm(folded), product.name or ""


def _sort_priority(products: Sequence[ProductRecord]) -> List[ProductRecord]:
    # newest first inside each priority bucket
    by_recency = sorted(products, key=_created, reverse=True)
    return sorted(by_recency, key=_priority)


SORTERS: Dict[str, Callable[[Sequence[ProductRecord]], List[ProductRecord]]] = {
    "priority": _sort_priority,
    "price-low": lambda items: sorted(items, key=lambda p: p.price),
    "price-high": lambda items: sorted(items, key=lambda p: p.price, reverse=True),
    "name-asc": lambda items: sorted(items, key=_name_key),
    "name-desc": lambda items: sorted(items, key=_name_key, reverse=True),
    "newest": lambda items: sorted(items, key=_created, reverse=True),
    "oldest": lambda items: sorted(items, key=_created),
}

SORT_KEYS = tuple(SORTERS)


@dataclass
class CatalogPage:
    items: List[ProductRecord]
    page: int
    total_pages: int
    total_items: int
    sort_key: str = DEFAULT_SORT
    search: str = ""


def total_pages_for(count: int, page_size: int = PAGE_SIZE) -> int:
    return max(1, math.ceil(count / page_size))


def filter_products(products: Sequence[ProductRecord], search: str) -> List[ProductRecord]:
    """Case-insensitive substring match on name or description"""
    needle = (search or "").strip().casefold()
    if not needle:
        return list(products)
    return [
        p for p in products
        if needle in (p.name or "").casefold() or needle in (p.description or "").casefold()
    ]


def sort_products(products: Sequence[ProductRecord], sort_key: str = DEFAULT_SORT) -> List[ProductRecord]:
    try:
        sorter = SORTERS[sort_key]
    except KeyError:
        raise ValidationFailedError(
            f"Unknown sort key: {sort_key}",
            detail={"allowed": list(SORT_KEYS)},
        ) from None
    return sorter(products)


def build_catalog_view(
    products: Sequence[ProductRecord],
    sort_key: str = DEFAULT_SORT,
    search: str = "",
    page: int = 1,
    page_size: int = PAGE_SIZE,
) -> CatalogPage:
    """
    Filter, sort and slice the catalog.

    An out-of-range page falls back to page 1 instead of returning an empty
    slice.
    """
    ordered = sort_products(filter_products(products, search), sort_key)
    total_pages = total_pages_for(len(ordered), page_size)
    if page < 1 or page > total_pages:
        page = 1

    start = (page - 1) * page_size
    return CatalogPage(
        items=ordered[start:start + page_size],
        page=page,
        total_pages=total_pages,
        total_items=len(ordered),
        sort_key=sort_key,
        search=search,
    )


@dataclass
class CatalogBrowser:
    """
    Interactive catalog state for one visitor.

    Example:
        browser = CatalogBrowser(products)
        browser.go_to(2)
        browser.set_sort("name-desc")   # back on page 1
        browser.view().items
    """
    products: List[ProductRecord] = field(default_factory=list)
    sort_key: str = DEFAULT_SORT
    search: str = ""
    page: int = 1
    page_size: int = PAGE_SIZE

    def view(self) -> CatalogPage:
        result = build_catalog_view(self.products, self.sort_key, self.search, self.page, self.page_size)
        self.page = result.page
        return result

    def set_sort(self, sort_key: str) -> CatalogPage:
        if sort_key not in SORTERS:
            raise ValidationFailedError(f"Unknown sort key: {sort_key}", detail={"allowed": list(SORT_KEYS)})
        self.sort_key = sort_key
        self.page = 1
        return self.view()

    def set_search(self, search: str) -> CatalogPage:
        self.search = search
        self.page = 1
        return self.view()

    def go_to(self, page: int) -> CatalogPage:
        self.page = page
        return self.view()

    def replace_products(self, products: Sequence[ProductRecord]) -> CatalogPage:
        """Swap in fresh data, keeping the page when it is still in range"""
        self.products = list(products)
        return self.view()
