# peer_ranking/core/database.py
import functools

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from peer_ranking.core.config import settings
from peer_ranking.core.errors import ReadOnlyModeError


def build_engine(url: str, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_engine(url, echo=settings.DB_ECHO, future=True, **kwargs)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    db = SessionLocal()
    db.info["read_only"] = settings.READ_ONLY_MODE
    try:
        yield db
    finally:
        db.close()


# ---------- Read-only (maintenance) guard ----------

@event.listens_for(Session, "before_flush")
def _block_flush_in_read_only_mode(session, flush_context, instances):
    if session.info.get("read_only") and (session.new or session.dirty or session.deleted):
        raise ReadOnlyModeError()


@event.listens_for(Session, "do_orm_execute")
def _block_dml_in_read_only_mode(orm_execute_state):
    if not orm_execute_state.session.info.get("read_only"):
        return
    if orm_execute_state.is_insert or orm_execute_state.is_update or orm_execute_state.is_delete:
        raise ReadOnlyModeError()


def rollback_on_error(method):
    """Service-method decorator: any exception rolls back ``self.db`` before propagating."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except Exception:
            self.db.rollback()
            raise

    return wrapper
