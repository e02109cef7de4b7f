from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List
from ..database import get_db
from ..dependencies import get_user_id
from ..models.holding import Holding, CATEGORIES
from ..schemas.holding import (
    HoldingCreate,
    HoldingResponse,
    HoldingUpdate,
    HoldingWithValue,
    SellRequest,
    SellResponse,
    TransactionResponse,
)
from ..services.holding_service import HoldingService, describe

router = APIRouter(prefix="/holdings", tags=["holdings"])


def get_owned_holding(
    holding_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id)
) -> Holding:
    holding = HoldingService.get_holding(db, user_id, holding_id)
    if not holding:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Holding with id {holding_id} not found"
        )
    return holding


@router.get("/categories")
def get_categories():
    """Get list of asset categories"""
    return {
        "categories": [
            {"code": code, "name": name}
            for code, name in CATEGORIES.items()
        ]
    }


@router.get("/", response_model=List[HoldingWithValue])
def get_holdings(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id)
):
    """Get all holdings with their current valuation"""
    return [describe(h) for h in HoldingService.list_holdings(db, user_id)]


@router.get("/{holding_id}", response_model=HoldingWithValue)
def get_holding(holding: Holding = Depends(get_owned_holding)):
    """Get a single holding by ID"""
    return describe(holding)


@router.post("/", response_model=HoldingWithValue, status_code=status.HTTP_201_CREATED)
def create_holding(
    holding: HoldingCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_user_id)
):
    """Create a new holding"""
    return describe(HoldingService.create_holding(db, user_id, holding))


@router.put("/{holding_id}", response_model=HoldingWithValue)
def update_holding(
    holding_update: HoldingUpdate,
    holding: Holding = Depends(get_owned_holding),
    db: Session = Depends(get_db)
):
    """Update an existing holding"""
    return describe(HoldingService.update_holding(db, holding, holding_update))


@router.delete("/{holding_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_holding(
    holding: Holding = Depends(get_owned_holding),
    db: Session = Depends(get_db)
):
    """Delete a holding"""
    HoldingService.delete_holding(db, holding)
    return None


@router.post("/{holding_id}/sell", response_model=SellResponse)
def sell_holding(
    sell: SellRequest,
    holding: Holding = Depends(get_owned_holding),
    db: Session = Depends(get_db)
):
    """
    Sell part of a holding.

    Selling more than held sells everything; a remainder at or below
    0.0001 units closes the position.
    """
    try:
        remaining, transaction = HoldingService.sell_holding(db, holding, sell.quantity, sell.unit_price)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return SellResponse(
        holding=HoldingResponse.model_validate(remaining) if remaining is not None else None,
        transaction=TransactionResponse.model_validate(transaction),
        closed=remaining is None,
    )
