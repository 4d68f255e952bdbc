from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from s3_upload.config import get_api_cors_allow_origins
from s3_upload.logging_config import setup_logging
from s3_upload.routers import storage_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    yield
    issuer = getattr(app.state, "upload_issuer", None)
    if issuer is not None:
        await issuer.shutdown()


app = FastAPI(
    title="S3 Upload API",
    description="Presigned S3 uploads with temporary bucket CORS windows",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_api_cors_allow_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(storage_router)


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "s3-upload-api"}
