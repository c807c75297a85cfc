"""
API Routes
Progetto: Sales Tracker (Abbonamenti e Rate)

Router aggregato montato sotto /api.
"""

from fastapi import APIRouter

from app.api import analytics, sales

api_router = APIRouter(prefix="/api")

api_router.include_router(sales.router)
api_router.include_router(analytics.router)

__all__ = ["api_router"]
