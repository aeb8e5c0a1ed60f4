"""
Table Session Log Model: append-only audit trail of QR check-ins.
"""

from __future__ import annotations

from sqlalchemy import ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import PK_TYPE, Base, CreatedAtMixin


class TableSessionLog(CreatedAtMixin, Base):
    """
    One row per issue or consume attempt, successful or not.

    ``table_id`` holds the table's static id. Attempts whose table could
    not be resolved are never written (the column is a foreign key).
    Rows are never updated or deleted by the application.
    """

    __tablename__ = "table_session_log"

    id: Mapped[int] = mapped_column(PK_TYPE, primary_key=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    table_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("dining_table.static_id"), nullable=False, index=True
    )
    action: Mapped[str] = mapped_column(String(16), nullable=False)  # issue, consume
    ip: Mapped[str] = mapped_column(Text, nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, nullable=False)
    result: Mapped[str] = mapped_column(String(64), nullable=False)

    __table_args__ = (
        # Stats are always "since <timestamp>, grouped by action/result"
        Index("ix_table_session_log_created_action", "created_at", "action"),
    )

    def __repr__(self) -> str:
        return f"<TableSessionLog(id={self.id}, table_id={self.table_id!r}, action={self.action}, result={self.result})>"
