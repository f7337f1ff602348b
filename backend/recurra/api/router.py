"""
Main API router.
"""

from fastapi import APIRouter
from recurra.api import recurring, transactions

api_router = APIRouter()

api_router.include_router(transactions.router)
api_router.include_router(recurring.router)
