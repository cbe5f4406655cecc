from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from storefront.core.config import settings

class Base(DeclarativeBase): pass

def _engine_options(dsn: str) -> dict:
    if dsn.startswith("sqlite"):
        # sync routes run in a threadpool
        return {"connect_args": {"check_same_thread": False, "timeout": settings.ORDER_TX_TIMEOUT_SECONDS}}
    return {"pool_pre_ping": True, "pool_timeout": settings.ORDER_TX_MAX_WAIT_SECONDS}

engine = create_engine(settings.POSTGRES_DSN, **_engine_options(settings.POSTGRES_DSN))
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
