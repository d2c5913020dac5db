# staff_directory/api/v1/api.py
from fastapi import APIRouter
from staff_directory.api.v1.endpoints import activity, admin, departments, users

api_router = APIRouter()

api_router.include_router(users.router, prefix="/users", tags=["Users"])
api_router.include_router(admin.router, prefix="/admin", tags=["Admin"])
api_router.include_router(departments.router, prefix="/departments", tags=["Departments"])
api_router.include_router(activity.router, prefix="/activities", tags=["Activities"])
