from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import CONFIG
from .routes import alerts as alert_routes
from .routes import children as child_routes
from .routes import loyalty as loyalty_routes
from .routes import parties as party_routes
from .routes import profile as profile_routes
from .routes import sessions as session_routes
from .routes import stats as stats_routes
from .routes import support as support_routes

app = FastAPI(
    title="Air Jump API",
    version="0.1.0",
    description="Child registration, QR entry sessions and venue services for Air Jump",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CONFIG.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=False,
)

app.include_router(profile_routes.router)
app.include_router(child_routes.router)
app.include_router(session_routes.router)
app.include_router(loyalty_routes.router)
app.include_router(party_routes.router)
app.include_router(support_routes.router)
app.include_router(alert_routes.router)
app.include_router(stats_routes.router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok", "venue": CONFIG.venue_name}


@app.get("/")
async def root() -> dict:
    return {"message": "Air Jump API ready"}
