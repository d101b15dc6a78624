# models/alert_trigger.py
import enum
from sqlalchemy import Column, Integer, BigInteger, String, Float, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from services.db_service import Base


class TriggerType(str, enum.Enum):
    PRICE = "price"
    PERCENT = "percent"
    SHARP_CHANGE = "sharp_change"
    STOP_LOSS = "stop_loss"


class AlertTrigger(Base):
    """Append-only log of every fired alert, sharp move and stop-loss."""
    __tablename__ = "alert_triggers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(String(8), nullable=True)   # alert or call id; empty for sharp-change rows
    symbol = Column(String, nullable=False)
    trigger_price = Column(Float, nullable=False)
    chat_id = Column(BigInteger, nullable=False, index=True)
    user_id = Column(BigInteger, nullable=True)
    username = Column(String, nullable=True)
    trigger_type = Column(SAEnum(TriggerType), nullable=False)
    triggered_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
