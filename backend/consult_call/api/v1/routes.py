"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from consult_call.api.v1.endpoints import calls

api_router = APIRouter()

api_router.include_router(calls.router)
