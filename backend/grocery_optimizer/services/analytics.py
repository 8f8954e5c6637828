"""Fire-and-forget trip analytics. Runs after the trip response is final; failures are only logged."""

from grocery_optimizer.logging import get_logger
from grocery_optimizer.services.optimization.collaborators import AnalyticsSink

logger = get_logger(__name__)


def record_trip_event(sink: AnalyticsSink, trip_id: int, item_count: int, selected_strategy: str) -> None:
    try:
        sink.record(trip_id, item_count, selected_strategy)
    except Exception as e:
        logger.warning("analytics.trip_event_failed trip_id=%s error=%s", trip_id, e)
        return
    logger.info(
        "analytics.trip_event trip_id=%s items=%s strategy=%s",
        trip_id,
        item_count,
        selected_strategy,
    )
