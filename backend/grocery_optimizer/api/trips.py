from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Header
from fastapi.responses import JSONResponse

from grocery_optimizer.logging import get_logger
from grocery_optimizer.schemas.trip import TripRequest, TripResponse
from grocery_optimizer.services.analytics import record_trip_event
from grocery_optimizer.services.distance.matrix_client import distance_matrix_client
from grocery_optimizer.services.optimization.errors import TripOptimizationError
from grocery_optimizer.services.optimization.optimizer import TripOptimizer
from grocery_optimizer.services.optimization.types import StrategyMode
from grocery_optimizer.storage import db
from grocery_optimizer.storage.repositories import SqlAnalyticsSink, SqlCatalog, SqlTripStore

router = APIRouter()
logger = get_logger(__name__)

UNEXPECTED_ERROR = "An unexpected error occurred"


def _optimizer(session) -> TripOptimizer:
    catalog = SqlCatalog(session)
    return TripOptimizer(
        stores=catalog,
        catalog=catalog,
        prices=catalog,
        trips=SqlTripStore(session),
        distances=distance_matrix_client,
    )


def _error_response(e: TripOptimizationError) -> JSONResponse:
    return JSONResponse(e.to_payload(), status_code=e.status_code)


@router.post("/trips", response_model=TripResponse, status_code=201)
def create_trip(
    request: TripRequest,
    background_tasks: BackgroundTasks,
    x_user_id: Optional[str] = Header(default=None),
):
    """
    Optimize a shopping list into CHEAPEST / FASTEST / BALANCED plans and save the trip.
    Nothing is committed unless every plan was built and persisted.
    """
    try:
        with db.get_session() as session:
            result = _optimizer(session).optimize_trip(request, user_id=x_user_id)
            session.commit()
    except TripOptimizationError as e:
        logger.info("trips.create_failed status=%s error=%s", e.status_code, e.message)
        return _error_response(e)
    except Exception:
        logger.exception("trips.create_unexpected")
        return JSONResponse({"error": UNEXPECTED_ERROR}, status_code=500)

    strategy = request.preferences.strategy if request.preferences else StrategyMode.ALL
    background_tasks.add_task(
        record_trip_event,
        SqlAnalyticsSink(),
        result.trip_id,
        len(request.items),
        strategy.value,
    )
    return result


@router.get("/trips/{trip_id}", response_model=TripResponse)
def get_trip(trip_id: int):
    try:
        with db.get_session() as session:
            return _optimizer(session).load_trip(trip_id)
    except TripOptimizationError as e:
        return _error_response(e)
    except Exception:
        logger.exception("trips.get_unexpected trip_id=%s", trip_id)
        return JSONResponse({"error": UNEXPECTED_ERROR}, status_code=500)
