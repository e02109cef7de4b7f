from fastapi import APIRouter, Depends
import logging

from ..config import settings
from ..dependencies import get_history_aggregator
from ..schemas.price import HistoricalRequest, HistoricalResponse
from ..services.history_service import HistoricalAggregator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["history"])


@router.post("/historical-prices", response_model=HistoricalResponse)
async def get_historical_prices(
    request: HistoricalRequest,
    aggregator: HistoricalAggregator = Depends(get_history_aggregator)
):
    """
    Portfolio value per day over ``period`` (3m, 1y or 3y; anything else is 1y).

    A holding whose history cannot be fetched is left out of the sum.
    """
    points = await aggregator.aggregate(request.assets, request.period)
    return HistoricalResponse(points=points, currency=settings.base_currency)
