# models/alert.py
from sqlalchemy import Column, BigInteger, String, Float, DateTime
from sqlalchemy.sql import func
from services.db_service import Base


class Alert(Base):
    __tablename__ = "alerts"

    id = Column(String(8), primary_key=True)             # short hex id shown to users
    chat_id = Column(BigInteger, nullable=False, index=True)
    user_id = Column(BigInteger, nullable=False)
    username = Column(String, nullable=True)
    symbol = Column(String, nullable=False, index=True)  # normalized, e.g. "BTCUSDT"
    target_price = Column(Float, nullable=True)
    target_percent = Column(Float, nullable=True)
    base_price = Column(Float, nullable=True)            # price at creation, for percent targets
    exchange = Column(String, nullable=True)             # source resolved at creation
    market = Column(String, nullable=True)               # "spot" / "futures"
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_percent(self) -> bool:
        return self.target_percent is not None and self.target_price is None
