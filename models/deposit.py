# models/deposit.py
from sqlalchemy import Column, BigInteger, Float, DateTime
from sqlalchemy.sql import func
from services.db_service import Base

DEFAULT_DEPOSIT = 100.0


class UserDeposit(Base):
    __tablename__ = "user_deposits"

    user_id = Column(BigInteger, primary_key=True)
    initial_deposit = Column(Float, nullable=False, default=DEFAULT_DEPOSIT)
    current_deposit = Column(Float, nullable=False, default=DEFAULT_DEPOSIT)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
