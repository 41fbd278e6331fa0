# isort: dont-add-imports

from fastapi import APIRouter

from . import usc

ir_router = APIRouter(tags=["IR"], prefix="/ir")

ir_router.include_router(usc.router)
