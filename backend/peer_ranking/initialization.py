import logging
from sqlalchemy import func, inspect, select
from sqlalchemy.orm import Session

from peer_ranking.core.config import settings
from peer_ranking.core.database import engine
from peer_ranking.models import ActionLog, Base, CommentRankingProposal, ProposalVote, RankingProposal

logger = logging.getLogger("uvicorn")


class ApplicationInitializer:
    """Handles schema bootstrap and reports what the datastore currently holds."""

    def __init__(self, bind=None):
        self.bind = bind or engine

    def initialize_database(self, db: Session) -> dict:
        logger.info("🔍 Checking database initialization status...")
        if settings.READ_ONLY_MODE:
            logger.warning("🔒 READ_ONLY_MODE is on: skipping schema creation, all writes will be refused")
            return {"schema_ready": self._has_schema(), "read_only": True}
        try:
            logger.info("🛠️ Creating database schema...")
            Base.metadata.create_all(bind=self.bind)
            logger.info("✅ Database schema created successfully")
            return {"schema_ready": True, "read_only": False}
        except Exception as e:
            logger.error(f"❌ Database initialization failed: {e}")
            return {"schema_ready": False, "read_only": False, "error": str(e)}

    def _has_schema(self) -> bool:
        existing = set(inspect(self.bind).get_table_names())
        return set(Base.metadata.tables).issubset(existing)

    def get_initialization_summary(self, db: Session) -> dict:
        """Get summary of current initialization status."""
        try:
            return {
                "database": {
                    "initialized": self._has_schema(),
                    "proposals": db.scalar(select(func.count(RankingProposal.proposal_id))) or 0,
                    "votes": db.scalar(select(func.count(ProposalVote.vote_id))) or 0,
                    "comment_rankings": db.scalar(select(func.count(CommentRankingProposal.proposal_id))) or 0,
                    "ledger_entries": db.scalar(select(func.count(ActionLog.log_id))) or 0,
                },
                "config": {
                    "dedup_window_seconds": settings.DEDUP_WINDOW_SECONDS,
                    "read_only_mode": settings.READ_ONLY_MODE,
                    "ledger_fail_open_in_read_only": settings.LEDGER_FAIL_OPEN_IN_READ_ONLY,
                },
            }
        except Exception as e:
            logger.error(f"Failed to get initialization summary: {e}")
            return {"error": str(e)}
