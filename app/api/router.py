from fastapi import APIRouter
from app.api.endpoints import sales

api_router = APIRouter()

# Combine all sub-routers into one
api_router.include_router(sales.router)
