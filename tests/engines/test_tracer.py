"""
Tests for the engine trace decorator.
"""

from decimal import Decimal

import pytest

from workwear_engines.tracer import fingerprint, traced_engine
from workwear_kernel.domain.orders import CartItem


@traced_engine("sample", "2.1", fingerprint_fields=("items", "allow"))
def sample_engine(items, allow=True):
    if not items:
        raise ValueError("empty cart")
    return len(items)


def shirt(price: str) -> CartItem:
    return CartItem(
        product_id="SHIRT-1",
        name="Oxford shirt",
        category="Shirt",
        quantity=1,
        unit_price=Decimal(price),
        vendor_id="V-A",
    )


def traces(captured_logs):
    return [r for r in captured_logs() if r["message"] == "WORKWEAR_ENGINE_TRACE"]


class TestTracedEngine:

    def test_record_fields(self, captured_logs):
        assert sample_engine([shirt("500")]) == 1

        [record] = traces(captured_logs)
        assert record["engine_name"] == "sample"
        assert record["engine_version"] == "2.1"
        assert record["outcome"] == "ok"
        assert record["function"] == "sample_engine"
        assert len(record["input_fingerprint"]) == 16
        assert record["duration_ms"] >= 0

    def test_positional_and_keyword_calls_match(self, captured_logs):
        sample_engine([shirt("500")], True)
        sample_engine(items=[shirt("500")], allow=True)

        first, second = traces(captured_logs)
        assert first["input_fingerprint"] == second["input_fingerprint"]

    def test_equal_prices_share_a_fingerprint(self):
        assert fingerprint({"items": [shirt("500")]}, ("items",)) == fingerprint(
            {"items": [shirt("500.00")]}, ("items",)
        )
        assert fingerprint({"items": [shirt("500")]}, ("items",)) != fingerprint(
            {"items": [shirt("501")]}, ("items",)
        )

    def test_failure_is_traced_and_reraised(self, captured_logs):
        with pytest.raises(ValueError):
            sample_engine([])

        [record] = traces(captured_logs)
        assert record["outcome"] == "error"
        assert record["error_type"] == "ValueError"
        assert record["level"] == "WARNING"
