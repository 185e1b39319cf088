"""Result history: SQLAlchemy models and session helpers."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import DateTime, Float, Integer, String, create_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, Session as OrmSession, mapped_column, sessionmaker


class Base(DeclarativeBase):
    pass


class Measurement(Base):
    """One measurement round of a successful run."""

    __tablename__ = "measurements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(String(32), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    measurement_index: Mapped[int] = mapped_column(Integer)
    strategy: Mapped[str] = mapped_column(String(16))
    server_id: Mapped[str] = mapped_column(String(32), index=True)
    server_name: Mapped[Optional[str]] = mapped_column(String(128))
    server_country: Mapped[Optional[str]] = mapped_column(String(64))
    server_sponsor: Mapped[Optional[str]] = mapped_column(String(128))
    server_distance_km: Mapped[Optional[float]] = mapped_column(Float)
    download_mbps: Mapped[float] = mapped_column(Float)
    upload_mbps: Mapped[float] = mapped_column(Float)
    latency_ms: Mapped[float] = mapped_column(Float)
    jitter_ms: Mapped[float] = mapped_column(Float)
    duration_seconds: Mapped[float] = mapped_column(Float)


def init_db(data_dir: Optional[Path]) -> sessionmaker:
    """Create the SQLite schema under *data_dir*; ``None`` gives an in-memory database."""
    url = f"sqlite:///{data_dir / 'measurements.db'}" if data_dir is not None else "sqlite://"
    engine = create_engine(url, future=True)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, future=True, expire_on_commit=False)


@contextmanager
def get_session(Session: sessionmaker) -> Iterator[OrmSession]:
    session = Session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
