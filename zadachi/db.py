import os

from sqlmodel import SQLModel, create_engine, Session

from . import models  # noqa: F401  register tables with the metadata
from .store import seed_catalog


def _default_sqlite_url() -> str:
    data_dir = "/data"
    if os.path.isdir(data_dir):
        return f"sqlite:////{os.path.join(data_dir.lstrip('/'), 'zadachi.db')}"
    return "sqlite:///zadachi.db"


DATABASE_URL = os.getenv("DATABASE_URL", _default_sqlite_url())
SEED_CATALOG = os.getenv("ZADACHI_SEED_CATALOG", "1").lower() not in ("0", "false", "no")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=connect_args)


def get_session():
    with Session(engine) as session:
        yield session


def init_db(seed: bool = SEED_CATALOG):
    SQLModel.metadata.create_all(engine)
    if seed:
        with Session(engine) as session:
            seed_catalog(session)
