"""API routes."""

from fastapi import APIRouter

from app.api.routes import orders, tips

api_router = APIRouter()

api_router.include_router(tips.router, prefix="/tips", tags=["tips"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
