import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from arenadraw import __version__
from arenadraw.config import LOG_LEVEL
from arenadraw.database import init_db
from arenadraw.routes import bracket, groups, matches, points, tournaments

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Arena Draw API", version=__version__)

_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
_extra = os.getenv("CORS_ORIGINS", "")
if _extra:
    _cors_origins.extend(o.strip() for o in _extra.split(",") if o.strip())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(groups.router, prefix="/api", tags=["groups"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(bracket.router, prefix="/api", tags=["bracket"])
app.include_router(points.router, prefix="/api", tags=["points"])


@app.on_event("startup")
def on_startup():
    init_db()
    logger.info("Arena Draw API %s started (%d routes)", __version__, len(app.routes))


@app.get("/api/health")
def health_check():
    return {"app_name": "Arena Draw API", "version": __version__, "status": "healthy"}
