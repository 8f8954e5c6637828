import logging

from grocery_optimizer.main import _field_path
from grocery_optimizer.services.optimization.errors import InvalidRequest, NoProductsMatched
from grocery_optimizer.services.optimization.types import Strategy, StrategyMode, combine_distance_sources
from grocery_optimizer.utils.timing import format_duration, time_span


def test_format_duration():
    assert format_duration(750) == "750ms"
    assert format_duration(12500) == "12.5s"


def test_time_span_logs_timing(caplog):
    with caplog.at_level(logging.INFO, logger="grocery_optimizer.utils.timing"):
        with time_span("trip.match", items=3) as span:
            assert span.elapsed_ms >= 0
    assert "[TIMING] trip.match" in caplog.text
    assert "items=3" in caplog.text


def test_combine_distance_sources():
    assert combine_distance_sources(["real", "real"]) == "real"
    assert combine_distance_sources(["fallback"]) == "fallback"
    assert combine_distance_sources([]) == "fallback"
    assert combine_distance_sources(["real", "fallback"]) == "mixed"


def test_strategy_mode_expands():
    assert StrategyMode.ALL.strategies() == [Strategy.CHEAPEST, Strategy.FASTEST, Strategy.BALANCED]
    assert StrategyMode.BALANCED.strategies() == [Strategy.BALANCED]


def test_error_payloads():
    assert InvalidRequest("bad", field="items").to_payload() == {"error": "bad", "field": "items"}
    assert InvalidRequest("bad").to_payload() == {"error": "bad"}
    assert NoProductsMatched("none").status_code == 422


def test_field_path():
    assert _field_path(("body", "items", 0, "quantity")) == "items[0].quantity"
    assert _field_path(("query", "lat")) == "lat"
    assert _field_path(("body",)) == ""
