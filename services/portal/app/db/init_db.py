from __future__ import annotations

from pathlib import Path

from services.portal.app.db.database import get_engine
from services.portal.app.db.models import Base
from services.portal.app.settings import env_flag


def init_db() -> None:
    if not env_flag("PORTAL_DB_AUTO_CREATE"):
        return

    engine = get_engine()
    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=engine)
