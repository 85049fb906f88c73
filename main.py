from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from api.workflows import router as workflows_router
from services.sacco_client import SaccoClient
from utils.log import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging("DEBUG" if settings.debug else settings.log_level)
    async with SaccoClient(settings.sacco_api_url) as client:
        app.state.sacco_client = client
        yield


app = FastAPI(
    title=settings.app_name,
    description="SACCO member loan application and guarantor allocation API",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(workflows_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
