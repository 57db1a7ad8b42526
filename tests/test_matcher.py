"""
Tests for the product matcher and the shared CJ rate state.
"""

import logging
from decimal import Decimal

from app.db import MatchMethod
from app.processor.matcher import (
    MatchedProduct,
    ProductMatcher,
    REASON_NO_LINK_OR_SKU,
    REASON_SKU_NOT_SUPPLIER_ID,
    REASON_SUPPLIER_NOT_FOUND,
    SupplierRateState,
    UnmatchedProduct,
)
from app.shopify import ShopifyClientError

from conftest import FakeCatalog, FakeSupplier, make_product


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def make_matcher(supplier, catalog=None, rate_state=None):
    return ProductMatcher(supplier, rate_state or SupplierRateState(), catalog=catalog, lookup_delay=0)


class TestMatchProduct:
    async def test_link_takes_priority_over_sku(self):
        supplier = FakeSupplier({"CJ123": "10.00", "SKU-1": "3.00"})
        product = make_product(link="CJ123", sku="SKU-1")

        outcome = await make_matcher(supplier).match_product(product)

        assert isinstance(outcome, MatchedProduct)
        assert outcome.supplier_id == "CJ123"
        assert outcome.supplier_price == Decimal("10.00")
        assert outcome.match_method == MatchMethod.LINK_ATTRIBUTE
        assert supplier.calls == ["CJ123"]

    async def test_linked_but_unknown_to_supplier(self):
        supplier = FakeSupplier({})

        outcome = await make_matcher(supplier).match_product(make_product(link="GONE", sku="CJ9"))

        assert isinstance(outcome, UnmatchedProduct)
        assert outcome.reason == REASON_SUPPLIER_NOT_FOUND
        assert supplier.calls == ["GONE"]

    async def test_sku_fallback_persists_link(self):
        supplier = FakeSupplier({"CJ777": "4.00"})
        catalog = FakeCatalog()
        product = make_product(product_id="42", sku="CJ777")

        outcome = await make_matcher(supplier, catalog=catalog).match_product(product)

        assert isinstance(outcome, MatchedProduct)
        assert outcome.match_method == MatchMethod.SKU_FALLBACK
        assert catalog.links == {"42": "CJ777"}
        assert product.linked_supplier_id == "CJ777"

    async def test_sku_fallback_link_write_failure_is_not_fatal(self):
        class ReadOnlyCatalog(FakeCatalog):
            async def set_supplier_link(self, product_id, supplier_id):
                raise ShopifyClientError("HTTP 500")

        supplier = FakeSupplier({"CJ777": "4.00"})
        product = make_product(product_id="42", sku="CJ777")

        outcome = await make_matcher(supplier, catalog=ReadOnlyCatalog()).match_product(product)

        assert isinstance(outcome, MatchedProduct)
        assert outcome.match_method == MatchMethod.SKU_FALLBACK
        assert outcome.supplier_price == Decimal("4.00")
        assert product.linked_supplier_id is None

    async def test_sku_that_is_not_a_supplier_id(self):
        outcome = await make_matcher(FakeSupplier({})).match_product(make_product(sku="MY-OWN-SKU"))

        assert isinstance(outcome, UnmatchedProduct)
        assert outcome.reason == REASON_SKU_NOT_SUPPLIER_ID

    async def test_no_link_no_sku_makes_no_calls(self):
        """Title similarity never plays a part in automatic matching."""
        supplier = FakeSupplier({"CJ1": "5.00"})
        product = make_product(title="CJ 1")

        outcome = await make_matcher(supplier).match_product(product)

        assert isinstance(outcome, UnmatchedProduct)
        assert outcome.reason == REASON_NO_LINK_OR_SKU
        assert supplier.calls == []


class TestMatchAll:
    async def test_every_product_lands_in_exactly_one_list(self):
        supplier = FakeSupplier({"A": "1.00", "B": "2.00"})
        products = [
            make_product("1", link="A"),
            make_product("2", sku="B"),
            make_product("3", link="MISSING"),
            make_product("4"),
            make_product("5", sku="nope"),
        ]

        report = await make_matcher(supplier, catalog=FakeCatalog()).match_all(products)

        matched_ids = {m.product.id for m in report.matched}
        unmatched_ids = {u.product.id for u in report.unmatched}
        assert matched_ids == {"1", "2"}
        assert unmatched_ids == {"3", "4", "5"}
        assert len(report.matched) + len(report.unmatched) == len(products)


class TestLookupCache:
    async def test_price_cached_between_runs(self):
        supplier = FakeSupplier({"CJ1": "5.00"})
        rate_state = SupplierRateState()

        await make_matcher(supplier, rate_state=rate_state).lookup_price("CJ1")
        await make_matcher(supplier, rate_state=rate_state).lookup_price("CJ1")

        assert supplier.calls == ["CJ1"]

    async def test_not_found_cached_until_expiry(self):
        clock = FakeClock()
        supplier = FakeSupplier({})
        rate_state = SupplierRateState(not_found_ttl=60, clock=clock)
        matcher = make_matcher(supplier, rate_state=rate_state)

        assert await matcher.lookup_price("X") is None
        assert await matcher.lookup_price("X") is None
        clock.now += 61
        assert await matcher.lookup_price("X") is None

        assert supplier.calls == ["X", "X"]


class TestRateLimitCooldown:
    async def test_no_calls_during_cooldown(self):
        clock = FakeClock()
        supplier = FakeSupplier({"A": "1.00", "B": "2.00"}, rate_limited=True)
        rate_state = SupplierRateState(cooldown=3600, clock=clock)
        matcher = make_matcher(supplier, rate_state=rate_state)

        first = await matcher.match_product(make_product("1", link="A"))
        second = await matcher.match_product(make_product("2", link="B"))

        assert isinstance(first, UnmatchedProduct)
        assert isinstance(second, UnmatchedProduct)
        assert supplier.calls == ["A"]
        assert rate_state.paused

    async def test_cooldown_expires(self):
        clock = FakeClock()
        supplier = FakeSupplier({"A": "1.00"}, rate_limited=True)
        rate_state = SupplierRateState(cooldown=3600, clock=clock)
        matcher = make_matcher(supplier, rate_state=rate_state)

        await matcher.lookup_price("A")
        clock.now += 3601
        supplier.rate_limited = False

        assert await matcher.lookup_price("A") == Decimal("1.00")
        assert not rate_state.paused

    async def test_transition_logged_once(self, caplog):
        supplier = FakeSupplier({}, rate_limited=True)
        rate_state = SupplierRateState(clock=FakeClock())
        matcher = make_matcher(supplier, rate_state=rate_state)

        with caplog.at_level(logging.WARNING, logger="app.processor.matcher"):
            for supplier_id in ("A", "B", "C"):
                await matcher.lookup_price(supplier_id)

        messages = [r.message for r in caplog.records if "rate limited" in r.message]
        assert len(messages) == 1

    def test_pause_reports_transition_only(self):
        rate_state = SupplierRateState(clock=FakeClock())

        assert rate_state.pause() is True
        assert rate_state.pause() is False
