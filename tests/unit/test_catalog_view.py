"""
Unit Tests - Catalog View Pipeline
"""
import locale
from datetime import datetime, timedelta, timezone

import pytest

from storefront.catalog.view import (
    PAGE_SIZE,
    CatalogBrowser,
    build_catalog_view,
    configure_collation,
    filter_products,
    sort_products,
    total_pages_for,
)
from storefront.errors import ValidationFailedError

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def thirteen(product_record):
    return [
        product_record(f"Item {i:02d}", price=100 + i, created_at=BASE_TIME + timedelta(minutes=i))
        for i in range(1, 14)
    ]


class TestSorting:
    """Tests for the sort keys"""

    def test_priority_then_newest(self, product_record):
        """Test lower priority first, newest first inside a priority"""
        old_featured = product_record("Old featured", priority=1, created_at=BASE_TIME)
        new_featured = product_record("New featured", priority=1, created_at=BASE_TIME + timedelta(days=1))
        regular = product_record("Regular", created_at=BASE_TIME + timedelta(days=2))
        second = product_record("Second", priority=2, created_at=BASE_TIME)

        result = sort_products([regular, old_featured, second, new_featured], "priority")

        assert [p.name for p in result] == ["New featured", "Old featured", "Second", "Regular"]

    def test_price_high_reverses_price_low_for_distinct_prices(self, product_record):
        """Test price-high is exactly price-low reversed"""
        products = [product_record(f"P{i}", price=p) for i, p in enumerate([450, 120, 999, 300])]

        low = sort_products(products, "price-low")
        high = sort_products(products, "price-high")

        assert [p.price for p in low] == sorted(p.price for p in products)
        assert [p.id for p in high] == [p.id for p in reversed(low)]

    def test_name_sort_is_case_insensitive(self, product_record):
        """Test name ordering ignores case"""
        products = [product_record("banana"), product_record("Apple"), product_record("cherry")]

        assert [p.name for p in sort_products(products, "name-asc")] == ["Apple", "banana", "cherry"]
        assert [p.name for p in sort_products(products, "name-desc")] == ["cherry", "banana", "Apple"]

    def test_newest_and_oldest(self, product_record):
        """Test creation-time orderings"""
        first = product_record("First", created_at=BASE_TIME)
        second = product_record("Second", created_at=BASE_TIME + timedelta(hours=1))

        assert sort_products([first, second], "newest")[0] is second
        assert sort_products([second, first], "oldest")[0] is first

    def test_missing_creation_time_counts_as_epoch(self, product_record):
        """Test a product without created_at is the oldest of all"""
        undated = product_record("Undated", created_at=None)
        early = product_record("Early", created_at=datetime(1999, 1, 1, tzinfo=timezone.utc))
        recent = product_record("Recent", created_at=BASE_TIME)

        assert [p.name for p in sort_products([recent, undated, early], "oldest")] == ["Undated", "Early", "Recent"]
        assert [p.name for p in sort_products([undated, recent, early], "newest")] == ["Recent", "Early", "Undated"]

    def test_missing_priority_sorts_last(self, product_record):
        """Test products without a priority follow every ranked product"""
        unranked = product_record("Unranked", created_at=BASE_TIME + timedelta(days=3))
        unset = product_record("Unset", created_at=BASE_TIME + timedelta(days=2))
        unset.priority = None
        ranked = product_record("Ranked", priority=500, created_at=BASE_TIME)

        result = sort_products([unset, unranked, ranked], "priority")

        assert [p.name for p in result] == ["Ranked", "Unranked", "Unset"]

    def test_accented_names_sort_with_their_base_letter(self, product_record):
        """Test accented initials sort next to the plain letter, not after z"""
        products = [product_record("Zebra"), product_record("Éclair"), product_record("apple"), product_record("eel")]

        assert [p.name for p in sort_products(products, "name-asc")] == ["apple", "Éclair", "eel", "Zebra"]
        assert [p.name for p in sort_products(products, "name-desc")] == ["Zebra", "eel", "Éclair", "apple"]

    def test_configure_collation_falls_back(self):
        """Test an uninstalled locale leaves the current collation in place"""
        before = locale.setlocale(locale.LC_COLLATE)

        active = configure_collation("xx_NOPE.UTF-8")

        assert active == before
        assert locale.setlocale(locale.LC_COLLATE) == before

    def test_unknown_sort_key_rejected(self, product_record):
        """Test an unknown key is a validation error"""
        with pytest.raises(ValidationFailedError):
            sort_products([product_record("A")], "random")


class TestFiltering:
    """Tests for text search"""

    def test_matches_name_or_description(self, product_record):
        """Test substring match on name and description, case-insensitive"""
        products = [
            product_record("Silk Saree"),
            product_record("Leather Wallet", description="Hand-stitched, fits a SAREE pleat"),
            product_record("Canvas Bag"),
        ]

        result = filter_products(products, "saree")

        assert [p.name for p in result] == ["Silk Saree", "Leather Wallet"]

    def test_blank_search_keeps_everything(self, product_record):
        """Test whitespace-only search is no filter"""
        products = [product_record("A"), product_record("B")]
        assert filter_products(products, "   ") == products


class TestPagination:
    """Tests for paging and page resets"""

    def test_defaults(self, thirteen):
        """Test the default view is priority-sorted page 1 of 12"""
        page = build_catalog_view(thirteen)

        assert page.page == 1
        assert page.sort_key == "priority"
        assert page.total_items == 13
        assert page.total_pages == 2
        assert len(page.items) == PAGE_SIZE

    def test_second_page_has_remainder(self, thirteen):
        """Test page 2 holds the 13th product"""
        page = build_catalog_view(thirteen, page=2)
        assert len(page.items) == 1

    def test_out_of_range_page_falls_back_to_first(self, thirteen):
        """Test a page past the end shows page 1, not an empty page"""
        page = build_catalog_view(thirteen, search="Item 1", page=2)

        assert page.total_items == 4
        assert page.page == 1
        assert len(page.items) == 4

    def test_empty_catalog_has_one_page(self):
        """Test no products still means one (empty) page"""
        page = build_catalog_view([])

        assert page.total_pages == 1
        assert page.items == []
        assert total_pages_for(0) == 1


class TestCatalogBrowser:
    """Tests for the interactive browser state"""

    def test_sort_change_on_page_two_resets_to_page_one(self, thirteen):
        """Test switching to name-desc from page 2 shows the first 12 of the new order"""
        browser = CatalogBrowser(products=thirteen)
        assert len(browser.go_to(2).items) == 1

        page = browser.set_sort("name-desc")

        assert browser.page == 1
        assert page.page == 1
        assert [p.name for p in page.items] == [f"Item {i:02d}" for i in range(13, 1, -1)]

    def test_search_change_resets_page(self, thirteen):
        """Test a new search goes back to page 1"""
        browser = CatalogBrowser(products=thirteen)
        browser.go_to(2)

        page = browser.set_search("item")

        assert page.page == 1
        assert page.total_items == 13

    def test_data_shrink_resets_page(self, thirteen):
        """Test fresh data with fewer products moves an out-of-range page back to 1"""
        browser = CatalogBrowser(products=thirteen)
        browser.go_to(2)

        page = browser.replace_products(thirteen[:5])

        assert page.page == 1
        assert browser.page == 1
        assert len(page.items) == 5

    def test_invalid_sort_keeps_state(self, thirteen):
        """Test a rejected sort key leaves the browser untouched"""
        browser = CatalogBrowser(products=thirteen)
        browser.go_to(2)

        with pytest.raises(ValidationFailedError):
            browser.set_sort("cheapest")

        assert browser.sort_key == "priority"
        assert browser.page == 2
