from fastapi import APIRouter, Depends

from voice_gateway.api.v1.agents import router as agents_router
from voice_gateway.api.v1.voice import router as voice_router
from voice_gateway.core.dependencies import verify_api_key

api_v1_router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])
api_v1_router.include_router(agents_router)
api_v1_router.include_router(voice_router)
