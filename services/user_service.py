from models.deposit import UserDeposit, DEFAULT_DEPOSIT
from services.db_service import get_db


def fetch_or_create_deposit(db, user_id):
    """Deposit row inside an open session; created with the default balance on first use."""
    deposit = db.get(UserDeposit, user_id)
    if not deposit:
        deposit = UserDeposit(
            user_id=user_id,
            initial_deposit=DEFAULT_DEPOSIT,
            current_deposit=DEFAULT_DEPOSIT
        )
        db.add(deposit)
        db.flush()
    return deposit


def get_or_create_deposit(user_id):
    with get_db() as db:
        deposit = fetch_or_create_deposit(db, user_id)
        db.commit()
        db.refresh(deposit)
        return deposit


def update_deposit(user_id, new_balance):
    with get_db() as db:
        deposit = fetch_or_create_deposit(db, user_id)
        deposit.current_deposit = float(new_balance)
        db.commit()
        db.refresh(deposit)
        return deposit


def reset_deposit(user_id, amount=DEFAULT_DEPOSIT):
    """Start over: both initial and current balance become amount."""
    if amount <= 0:
        raise ValueError("Deposit must be positive")
    with get_db() as db:
        deposit = fetch_or_create_deposit(db, user_id)
        deposit.initial_deposit = float(amount)
        deposit.current_deposit = float(amount)
        db.commit()
        db.refresh(deposit)
        return deposit
