"""Campus portal API service entrypoint."""

from fastapi import FastAPI

from services.portal.app.db.init_db import init_db
from services.portal.app.routers.auth import router as auth_router
from services.portal.app.routers.dashboard import router as dashboard_router
from services.portal.app.routers.food import router as food_router
from services.portal.app.routers.lost_and_found import router as lost_and_found_router
from services.portal.app.routers.repair import router as repair_router
from services.portal.app.services.realtime import OrderFeeds
from services.portal.app.settings import configure_logging

app = FastAPI(title="Campus Portal API")

app.include_router(auth_router)
app.include_router(food_router)
app.include_router(repair_router)
app.include_router(lost_and_found_router)
app.include_router(dashboard_router)


@app.on_event("startup")
def _startup() -> None:
    configure_logging()
    init_db()
    app.state.order_feeds = OrderFeeds()


@app.on_event("shutdown")
def _shutdown() -> None:
    app.state.order_feeds.stop_all()


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}
