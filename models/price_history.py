# models/price_history.py
from sqlalchemy import Column, Integer, String, Float, DateTime
from sqlalchemy.sql import func
from services.db_service import Base


class PriceHistory(Base):
    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    symbol = Column(String, nullable=False, index=True)
    price = Column(Float, nullable=False)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)
