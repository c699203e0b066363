# backend/sporewatch/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import init_db
from .errors import AuthError

# Routers
from .routers import auth, users, pathogens, uploads
from .routers.samples import router as samples_router, detections_router

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SporeWatch Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    # credentialed CORS cannot be combined with a wildcard origin
    allow_credentials=settings.cors_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


app.include_router(auth.router)
app.include_router(users.router)
app.include_router(samples_router)
app.include_router(detections_router)
app.include_router(pathogens.router)
app.include_router(uploads.router)


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("SporeWatch backend started (env=%s)", settings.app_env)


@app.get("/healthz")
def healthz():
    return {"ok": True}
