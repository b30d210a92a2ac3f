import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import settings
from core.logging import configure_logging

from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from api.routes.events import router as events_router
from api.routes.picks import router as picks_router
from api.routes.leaderboard import router as leaderboard_router
from api.routes.admin import router as admin_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level, settings.log_file)
    logger.info(
        "Fight Picks API starting",
        extra={"app_env": settings.app_env, "frontend_origins": settings.frontend_origins},
    )
    yield
    logger.info("Fight Picks API shutting down")


app = FastAPI(
    title="Fight Picks API",
    swagger_ui_parameters={"persistAuthorization": True},
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.frontend_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ())]
        # drop the body/query/path prefix
        if loc and loc[0] in ("body", "query", "path"):
            loc = loc[1:]
        errors.append({"field": ".".join(loc), "message": err.get("msg", "Invalid value")})

    return JSONResponse(status_code=400, content={"detail": "Validation errors", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "Unhandled exception",
        extra={"method": request.method, "path": request.url.path, "error": str(exc)},
        exc_info=True,
    )
    content = {"detail": "Server error"}
    if settings.is_development:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)


app.include_router(auth_router)
app.include_router(users_router)
app.include_router(events_router)
app.include_router(picks_router)
app.include_router(leaderboard_router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"ok": True}
