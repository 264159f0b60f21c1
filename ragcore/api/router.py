from fastapi import APIRouter
from ragcore.api import retrieve, tools


router = APIRouter()
router.include_router(
    retrieve.router,
    tags=["retrieve"],
)
router.include_router(
    tools.router,
    tags=["tools"],
)
