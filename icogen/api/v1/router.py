from fastapi import APIRouter

from icogen.api.v1.endpoints import icons

api_router = APIRouter()


@api_router.get("/ping", tags=["health"])
async def ping() -> dict[str, str]:
    return {"message": "pong"}


api_router.include_router(icons.router)
