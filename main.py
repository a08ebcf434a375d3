"""
Main entrypoint for the FastAPI server
"""

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.exceptions import HTTPException as StarletteHTTPException
from core.lifespan import lifespan
from core.config import get_settings
from core.exceptions import FileStorageError, PayloadTooLarge
from core.logger import logger
from core.security import verify_api_key

from api.files.routes import router as files_router


# Customize route id's
# Helpful for creating sensible names in the client
def custom_generate_unique_id(route: APIRoute):
    """ Generate unique route IDs based on route name """
    return f"{route.name}"  # these must be unique


# Create schema & router
app = FastAPI(
    title="File Storage API",
    description="Stores image and video files in an object store, "
                "with metadata kept in a database",
    version="1.0.0",
    lifespan=lifespan,
    generate_unique_id_function=custom_generate_unique_id
)

# CORS settings to allow client-server communication
# Set with env variable
origins = [get_settings().client_origin or "*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Origin", "Content-Type", "Authorization"],
    expose_headers=["Content-Length"],
)


# Refuse oversized bodies before they are read
@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    content_length = request.headers.get("content-length")
    max_size = get_settings().MAX_UPLOAD_SIZE
    if content_length is not None:
        try:
            too_large = int(content_length) > max_size
        except ValueError:
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Invalid Content-Length"},
            )
        if too_large:
            logger.info("Rejected body of %s bytes (limit %d)", content_length, max_size)
            return JSONResponse(
                status_code=PayloadTooLarge.status_code,
                content=PayloadTooLarge().to_dict(),
            )
    return await call_next(request)


# Error bodies are always {"error": "<reason>"}
@app.exception_handler(FileStorageError)
async def file_storage_error_handler(request: Request, exc: FileStorageError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info("Malformed request to %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "File upload error"},
    )


# REST routers
API_PREFIX = "/api/v1"

app.include_router(
    files_router,
    prefix=API_PREFIX,
    dependencies=[Depends(verify_api_key)],
)


# Liveness check; no API key required
@app.get("/health", tags=["health"])
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    # For debugging purposes
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8080, reload=True)
