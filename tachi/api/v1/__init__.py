# isort: dont-add-imports

from fastapi import APIRouter

from . import admin
from . import imports
from . import scores

apiv1_router = APIRouter(tags=["API v1"], prefix="/v1")

apiv1_router.include_router(admin.router)
apiv1_router.include_router(imports.router)
apiv1_router.include_router(scores.router)
