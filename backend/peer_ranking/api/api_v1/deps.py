from typing import Annotated

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from peer_ranking.core.clock import Clock, system_clock
from peer_ranking.core.database import get_db
from peer_ranking.services.notifications import LoggingNotifier, Notifier

_notifier = LoggingNotifier()


# ---------- Shared dependencies ----------
def get_clock() -> Clock:
    return system_clock

def get_notifier() -> Notifier:
    return _notifier

def get_actor_email(x_user_email: Annotated[str | None, Header(alias="X-User-Email")] = None) -> str:
    """Identity is established upstream; the gateway forwards it in X-User-Email."""
    if not x_user_email or "@" not in x_user_email:
        raise HTTPException(status_code=401, detail="Missing or invalid X-User-Email header")
    return x_user_email.strip().lower()


DbSession = Annotated[Session, Depends(get_db)]
ActorEmail = Annotated[str, Depends(get_actor_email)]
ClockDep = Annotated[Clock, Depends(get_clock)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]
