from __future__ import annotations

from stageasset.db.base import Base
from stageasset.db.session import engine
from stageasset.db import models  # noqa: F401


def init_database() -> dict[str, int]:
    Base.metadata.create_all(bind=engine)
    return {"tables": len(Base.metadata.tables)}
