from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
import logging
import uvicorn

from ragcore.api.router import router as v1_router
from ragcore.core.config import settings
from ragcore.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.LOG_LEVEL)
    logger.info(
        "ragcore starting",
        extra={"elastic_host": settings.ELASTIC_HOST, "embedding": settings.EMBEDDING_ENABLED},
    )
    yield


app = FastAPI(
    title="RAG Core API",
    version="0.1.0",
    lifespan=lifespan,
)


origins = [
    "http://localhost:3000",
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router)


@app.get("/health")
def health():
    return {"ok": True}


if __name__ == "__main__":
    uvicorn.run(
        "ragcore.main:app",
        host="localhost",
        port=8000,
        reload=True,
    )
