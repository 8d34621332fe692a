"""API router aggregation."""
from fastapi import APIRouter

from src.api.v1 import chat

api_router = APIRouter()

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(chat.router, prefix="/chat", tags=["chat"])

api_router.include_router(v1_router)
