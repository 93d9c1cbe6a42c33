"""FileDepot API."""

import logging
from contextlib import AsyncExitStack, asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from filedepot.api.files import app_files
from filedepot.api.info import app_info
from filedepot.api.users import app_users
from filedepot.config import Backend, get_settings
from filedepot.connections import filedepot_connections
from filedepot.errors import (
    AlreadyExists,
    FileDepotError,
    InternalError,
    InvalidParent,
    NotFound,
    Unauthorized,
    ValidationError,
)
from filedepot.services import Services, build_services, memory_services
from filedepot.thumbnails.pipeline import ThumbnailWorkers

logger = logging.getLogger("filedepot.api")

STATUS_CODES: dict[type[FileDepotError], int] = {
    Unauthorized: status.HTTP_401_UNAUTHORIZED,
    ValidationError: status.HTTP_400_BAD_REQUEST,
    InvalidParent: status.HTTP_400_BAD_REQUEST,
    AlreadyExists: status.HTTP_400_BAD_REQUEST,
    NotFound: status.HTTP_404_NOT_FOUND,
    InternalError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    async with AsyncExitStack() as stack:
        if getattr(app.state, "services", None) is None:
            logger.info(f"Initializing {settings.backend.value} backends...")
            if settings.backend == Backend.memory:
                app.state.services = memory_services(settings)
            else:
                connections = await stack.enter_async_context(filedepot_connections(settings))
                app.state.services = await build_services(settings, connections)

        n = settings.thumbnail_workers or (1 if settings.backend == Backend.memory else 0)
        if n:
            workers = ThumbnailWorkers(app.state.services.thumbnails, n)
            workers.start()
            stack.push_async_callback(workers.stop)
        yield


def create_app(services: Services | None = None) -> FastAPI:
    """
    Create the API app. If services are given they are used as is,
    otherwise they are created from the settings when the app starts.
    """
    app = FastAPI(
        title="FileDepot",
        description=__doc__ if __doc__ else "",
        openapi_tags=[
            dict(name="users", description="Endpoints to register, log in and log out"),
            dict(name="files", description="Endpoints to upload, list, publish and download files"),
            dict(name="informational", description="Endpoints for server health and statistics"),
        ],
        lifespan=lifespan,
    )
    app.state.services = services
    app.include_router(app_info)
    app.include_router(app_users)
    app.include_router(app_files)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(FileDepotError)
    async def filedepot_exception_handler(request: Request, exc: FileDepotError) -> JSONResponse:
        status_code = next(
            (code for (cls, code) in STATUS_CODES.items() if isinstance(exc, cls)),
            status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
        return JSONResponse(status_code=status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "There was an issue with the data you sent.", "fields_invalid": jsonable_encoder(exc.errors())},
        )

    return app


app = create_app()
