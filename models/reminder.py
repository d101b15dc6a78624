# models/reminder.py
from sqlalchemy import Column, Integer, BigInteger, String, DateTime
from sqlalchemy.sql import func
from services.db_service import Base


class Reminder(Base):
    __tablename__ = "reminders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chat_id = Column(BigInteger, nullable=False)
    user_id = Column(BigInteger, nullable=False)
    username = Column(String, nullable=True)
    symbol = Column(String, nullable=False)
    text = Column(String, nullable=True)
    trigger_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
