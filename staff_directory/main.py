# staff_directory/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI

from staff_directory.api.v1.api import api_router
from staff_directory.api.v1.endpoints import auth
from staff_directory.core.exceptions import register_exception_handlers
from staff_directory.core.logging import setup_logging
from staff_directory.db import models
from staff_directory.db.session import engine

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    models.Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Staff Directory API", lifespan=lifespan)
register_exception_handlers(app)

# Include the main router for all routes prefixed with /api/v1
app.include_router(api_router, prefix="/api/v1")

# The auth router lives outside the versioned prefix
app.include_router(auth.router, prefix="/auth", tags=["Auth"])

@app.get("/")
def read_root():
    return {"message": "Welcome to the Staff Directory API"}
