from fastapi import APIRouter

from hirepipe.api.routes import candidates
from hirepipe.api.routes import pipeline
from hirepipe.api.routes import stages

api_router = APIRouter()
api_router.include_router(stages.router)
api_router.include_router(candidates.router)
api_router.include_router(pipeline.router)
