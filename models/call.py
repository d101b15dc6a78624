# models/call.py
import enum
from sqlalchemy import Column, BigInteger, String, Float, DateTime, Enum as SAEnum
from sqlalchemy.sql import func
from services.db_service import Base


class CallDirection(str, enum.Enum):
    LONG = "long"
    SHORT = "short"


class CallStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class Call(Base):
    """A simulated position. Rows are never deleted; closing is a status change."""
    __tablename__ = "calls"

    id = Column(String(8), primary_key=True)
    user_id = Column(BigInteger, nullable=False, index=True)
    username = Column(String, nullable=True)
    chat_id = Column(BigInteger, nullable=False)
    symbol = Column(String, nullable=False, index=True)
    direction = Column(SAEnum(CallDirection), nullable=False, default=CallDirection.LONG)
    entry_price = Column(Float, nullable=False)
    size = Column(Float, nullable=False, default=100.0)           # remaining percent of the position
    deposit_percent = Column(Float, nullable=False, default=0.0)  # share of deposit committed
    stop_loss_price = Column(Float, nullable=True)
    status = Column(SAEnum(CallStatus), nullable=False, default=CallStatus.OPEN)
    exit_price = Column(Float, nullable=True)    # price of the last close action
    pnl_percent = Column(Float, nullable=True)   # P&L of the last close action
    exchange = Column(String, nullable=True)
    market = Column(String, nullable=True)
    opened_at = Column(DateTime(timezone=True), server_default=func.now())
    closed_at = Column(DateTime(timezone=True), nullable=True)
