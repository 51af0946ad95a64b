from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from support_relay.database import Base


class MessageEdit(Base):
    """One entry of a message's edit history. Rows are append-only."""

    __tablename__ = "message_edits"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    message_id = Column(Integer, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False, index=True)
    original_content = Column(Text, nullable=False, default="")
    edited_at = Column(DateTime(timezone=True), nullable=False)
    edited_by = Column(String(255))
    reason = Column(Text)

    message = relationship("Message", back_populates="edit_history")
