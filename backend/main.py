import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exception_handlers import http_exception_handler, request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from core.auth import fastapi_users, auth_backend
from core.config import settings
from core.exceptions import InsufficientQuantityError, LedgerError, NotFoundError, ValidationError
from core.logging_config import configure_logging
from db.database import create_db_and_tables
from routers.ledger import router as ledger_router
from schemas.users import UserRead, UserCreate, UserUpdate

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InsufficientQuantityError: status.HTTP_409_CONFLICT,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_format)
    await create_db_and_tables()
    logger.info("Copper ledger API started")
    yield


app = FastAPI(
    title="Copper Wire Ledger API",
    description="Stage-by-stage quantity ledger for copper wire production",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": exc.message, "data": exc.to_dict()},
    )


def _is_ledger_route(request: Request) -> bool:
    return request.url.path.startswith("/ledger")


# Ledger routes answer errors in the same envelope; fastapi-users routes keep {"detail": ...}
@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if not _is_ledger_route(request):
        return await request_validation_exception_handler(request, exc)
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "message": "Invalid request",
            "data": {"code": "INVALID_REQUEST", "errors": jsonable_encoder(exc.errors())},
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if not _is_ledger_route(request):
        return await http_exception_handler(request, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail), "data": {"code": "HTTP_ERROR", "status": exc.status_code}},
        headers=getattr(exc, "headers", None),
    )


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Stage ledger routes
app.include_router(ledger_router, prefix="/ledger", tags=["ledger"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
