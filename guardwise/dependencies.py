from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from guardwise.db import get_db
from guardwise.seed import configured_seeds
from guardwise.store import Repository, build_sql_repository


def get_repository(db: Session = Depends(get_db)) -> Repository:
    return build_sql_repository(db, configured_seeds())
