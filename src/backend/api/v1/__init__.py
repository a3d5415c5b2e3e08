"""
API v1 router aggregating all endpoints.
"""

from fastapi import APIRouter

from api.v1.analysis import router as analysis_router
from api.v1.feedback import router as feedback_router
from api.v1.likes import router as likes_router
from api.v1.votes import router as votes_router
from api.v1.wall import router as wall_router

router = APIRouter()

router.include_router(votes_router, prefix="/votes", tags=["Vote Ledger"])
router.include_router(feedback_router, tags=["Survey Responses"])
router.include_router(wall_router, prefix="/wall", tags=["Anonymous Wall"])
router.include_router(likes_router, prefix="/likes", tags=["Likes"])
router.include_router(analysis_router, prefix="/analysis", tags=["Analysis"])
