from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from support_relay.database import Base


class Message(Base):
    __tablename__ = "messages"
    # Ids are never reused after a delete
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False, default="")
    sender_type = Column(String(16), nullable=False)  # user, bot, admin
    sender_id = Column(String(255))
    session_id = Column(String(255))

    # Attachment, stored inline as a data URI
    file_name = Column(Text)
    file_mimetype = Column(String(255))
    file_size = Column(Integer)
    file_data = Column(Text)

    timestamp = Column(DateTime(timezone=True), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    is_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime(timezone=True))
    updated_at = Column(DateTime(timezone=True))
    is_edited = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="messages")
    edit_history = relationship(
        "MessageEdit",
        back_populates="message",
        order_by="MessageEdit.id",
        cascade="all, delete-orphan",
    )
