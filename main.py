from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from database import Base, engine, settings
from api import realtime, rooms, users, votes
from core.exceptions import GenderRevealException
from realtime.broadcaster import reset_broadcaster

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立資料庫表
    Base.metadata.create_all(bind=engine)
    yield
    # Shutdown: 釋放即時推播的 hub（所有訂閱一起丟掉）
    reset_broadcaster()


app = FastAPI(
    title="Gender Reveal Voting API",
    description="Backend API for live gender-reveal voting rooms",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(users.router)
app.include_router(rooms.router)
app.include_router(votes.router)
app.include_router(realtime.router)


def error_response(status_code: int, message: str, details=None) -> JSONResponse:
    """統一錯誤格式：{"success": false, "error": {"message", "details"}}"""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"message": message, "details": jsonable_encoder(details)},
        },
    )


@app.exception_handler(GenderRevealException)
async def handle_business_error(request: Request, exc: GenderRevealException):
    return error_response(exc.status_code, exc.message, exc.details)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    return error_response(422, "Validation failed.", exc.errors())


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    return error_response(500, "An unexpected error occurred")


@app.get("/")
def root():
    return {"message": "Gender Reveal Voting API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
