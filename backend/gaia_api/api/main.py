from fastapi import APIRouter

from gaia_api.api.routes import utils

api_router = APIRouter()
api_router.include_router(utils.router)
