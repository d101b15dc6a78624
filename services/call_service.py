# services/call_service.py
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from models.call import Call, CallDirection, CallStatus
from models.deposit import UserDeposit
from services.db_service import get_db, generate_short_id
from services.user_service import fetch_or_create_deposit
from utils.compute_fromdate import utc_now
from utils.normalize_data import normalize_symbol

logger = logging.getLogger(__name__)

FULL_SIZE = 100.0
# Remaining size below this counts as fully closed
MIN_REMAINING_SIZE = 0.001
# Lookback of the call statistics
STATS_WINDOW_DAYS = 90


class CallNotFoundError(LookupError):
    """No open call with that id belongs to the user."""


class InvalidSizeError(ValueError):
    """Close size outside (0, remaining size]."""


def calc_pnl(direction, entry_price: float, exit_price: float) -> float:
    """Percent P&L of a move from entry to exit for the given direction."""
    if direction == CallDirection.SHORT:
        return (entry_price - exit_price) / entry_price * 100
    return (exit_price - entry_price) / entry_price * 100


def open_call(user_id: int, chat_id: int, symbol: str, entry_price: float,
              direction: CallDirection = CallDirection.LONG, deposit_percent: float = 0.0,
              stop_loss_price: float = None, username: str = None,
              exchange: str = None, market: str = None) -> Call:
    """Open a full-size simulated position at entry_price."""
    if entry_price is None or entry_price <= 0:
        raise ValueError("Entry price must be positive")
    if deposit_percent < 0 or deposit_percent > 100:
        raise ValueError("Deposit percent must be between 0 and 100")
    if stop_loss_price is not None and stop_loss_price < 0:
        raise ValueError("Stop-loss must not be negative")

    normalized_symbol = normalize_symbol(symbol)
    if not normalized_symbol:
        raise ValueError("Symbol is required")

    with get_db() as db:
        fetch_or_create_deposit(db, user_id)
        call = Call(
            id=generate_short_id(db, Call),
            user_id=user_id,
            username=username,
            chat_id=chat_id,
            symbol=normalized_symbol,
            direction=CallDirection(direction),
            entry_price=float(entry_price),
            size=FULL_SIZE,
            deposit_percent=float(deposit_percent),
            stop_loss_price=float(stop_loss_price) if stop_loss_price else None,
            status=CallStatus.OPEN,
            exchange=exchange,
            market=market,
            opened_at=utc_now(),
        )
        db.add(call)
        db.commit()
        db.refresh(call)
        logger.info("Call %s opened by %s: %s %s @ %s", call.id, user_id,
                    call.direction.value, call.symbol, call.entry_price)
        return call


def get_call(call_id: str) -> Optional[Call]:
    with get_db() as db:
        return db.get(Call, call_id)


def close_call(call_id: str, user_id: int, exit_price: float, size: float = None) -> Call:
    """
    Close size percent of an open call at exit_price.

    size defaults to the whole remaining size. The deposit moves by the
    realized P&L of the closed share when the call committed a deposit
    percent. exit_price / pnl_percent describe this close. Once the
    remainder drops under MIN_REMAINING_SIZE the call is closed.

    Raises CallNotFoundError or InvalidSizeError; nothing is written then.
    """
    if exit_price is None or exit_price <= 0:
        raise ValueError("Exit price must be positive")

    with get_db() as db:
        call = (
            db.query(Call)
            .filter_by(id=call_id, user_id=user_id, status=CallStatus.OPEN)
            .first()
        )
        if not call:
            raise CallNotFoundError(f"Open call {call_id} not found")

        close_size = call.size if size is None else float(size)
        if close_size <= 0 or close_size > call.size + 1e-9:
            raise InvalidSizeError(f"Size must be in (0, {call.size:g}]")
        close_size = min(close_size, call.size)

        pnl = calc_pnl(call.direction, call.entry_price, exit_price)

        if call.deposit_percent and call.deposit_percent > 0:
            deposit = fetch_or_create_deposit(db, user_id)
            closed_pct = call.deposit_percent * (close_size / call.size)
            change = (closed_pct * (pnl / 100) / 100) * deposit.current_deposit
            deposit.current_deposit = deposit.current_deposit + change

        remaining = call.size - close_size
        if remaining < MIN_REMAINING_SIZE:
            call.size = 0.0
            call.status = CallStatus.CLOSED
            call.closed_at = utc_now()
        else:
            call.size = remaining
        call.exit_price = float(exit_price)
        call.pnl_percent = pnl

        db.commit()
        db.refresh(call)
        logger.info("Call %s closed %.3f%% at %s (pnl %.2f%%)", call_id, close_size, exit_price, pnl)
        return call


def update_stop_loss(call_id: str, user_id: int, price: Optional[float]) -> Call:
    """Set the stop-loss of an open call; None or 0 removes it."""
    if price is not None and price < 0:
        raise ValueError("Stop-loss must not be negative")
    with get_db() as db:
        call = (
            db.query(Call)
            .filter_by(id=call_id, user_id=user_id, status=CallStatus.OPEN)
            .first()
        )
        if not call:
            raise CallNotFoundError(f"Open call {call_id} not found")
        call.stop_loss_price = float(price) if price else None
        db.commit()
        db.refresh(call)
        return call


def list_open_calls_by_user(user_id: int) -> List[Call]:
    with get_db() as db:
        return (
            db.query(Call)
            .filter_by(user_id=user_id, status=CallStatus.OPEN)
            .order_by(Call.opened_at, Call.id)
            .all()
        )


def list_all_open_calls(symbol: str = None) -> List[Call]:
    with get_db() as db:
        query = db.query(Call).filter_by(status=CallStatus.OPEN)
        if symbol:
            query = query.filter_by(symbol=symbol)
        return query.order_by(Call.opened_at, Call.id).all()


def close_all_calls(user_id: int, prices: Dict[str, float]) -> List[Call]:
    """
    Close every open call of user_id whose symbol has a price in prices.

    Calls without a price are left open. Returns the closed calls.
    """
    closed = []
    for call in list_open_calls_by_user(user_id):
        price = prices.get(call.symbol)
        if price is None:
            continue
        try:
            closed.append(close_call(call.id, user_id, price))
        except CallNotFoundError:
            # closed concurrently (e.g. by a stop-loss)
            continue
    return closed


@dataclass
class CallStats:
    """Track record over the calls that committed part of the deposit."""
    user_id: int
    username: Optional[str] = None
    total_calls: int = 0
    closed_calls: int = 0
    winning_calls: int = 0
    total_pnl: float = 0.0
    avg_pnl: float = 0.0
    best_call: float = 0.0
    worst_call: float = 0.0
    win_rate: float = 0.0
    initial_deposit: Optional[float] = None
    current_deposit: Optional[float] = None
    total_return_percent: float = 0.0


@dataclass
class SymbolTrades:
    symbol: str
    total_calls: int = 0
    closed_calls: int = 0
    winning_calls: int = 0
    total_pnl: float = 0.0
    win_rate: float = 0.0


def _stats_cutoff():
    return utc_now() - timedelta(days=STATS_WINDOW_DAYS)


def _recent_deposit_calls(db, user_id: int = None) -> List[Call]:
    query = db.query(Call).filter(Call.opened_at >= _stats_cutoff(), Call.deposit_percent > 0)
    if user_id is not None:
        query = query.filter(Call.user_id == user_id)
    return query.order_by(Call.opened_at, Call.id).all()


def _summarize(user_id: int, calls: Iterable[Call]) -> CallStats:
    stats = CallStats(user_id=user_id)
    closed_pnls = []
    for call in calls:
        stats.total_calls += 1
        if call.username:
            stats.username = call.username
        if call.status == CallStatus.CLOSED and call.pnl_percent is not None:
            closed_pnls.append(call.pnl_percent)

    if closed_pnls:
        stats.closed_calls = len(closed_pnls)
        stats.winning_calls = sum(1 for pnl in closed_pnls if pnl > 0)
        stats.total_pnl = sum(closed_pnls)
        stats.avg_pnl = stats.total_pnl / stats.closed_calls
        stats.best_call = max(closed_pnls)
        stats.worst_call = min(closed_pnls)
        stats.win_rate = stats.winning_calls / stats.closed_calls * 100
    return stats


def get_user_stats(user_id: int) -> CallStats:
    """
    Call statistics of one user over the last STATS_WINDOW_DAYS.

    Only calls that committed a deposit percent count. Averages, best and
    worst are taken over the closed ones. A user without such calls gets
    zeroed stats.
    """
    with get_db() as db:
        return _summarize(user_id, _recent_deposit_calls(db, user_id))


def get_all_user_stats() -> List[CallStats]:
    """Per-user statistics with deposit growth, best total P&L first."""
    with get_db() as db:
        by_user: Dict[int, List[Call]] = {}
        for call in _recent_deposit_calls(db):
            by_user.setdefault(call.user_id, []).append(call)

        result = []
        for user_id, calls in by_user.items():
            stats = _summarize(user_id, calls)
            deposit = db.get(UserDeposit, user_id)
            if deposit is not None:
                stats.initial_deposit = deposit.initial_deposit
                stats.current_deposit = deposit.current_deposit
                if deposit.initial_deposit:
                    stats.total_return_percent = (
                        (deposit.current_deposit - deposit.initial_deposit)
                        / deposit.initial_deposit * 100
                    )
            result.append(stats)

    result.sort(key=lambda s: s.total_pnl, reverse=True)
    return result


def get_user_trades_by_symbol(user_id: int) -> List[SymbolTrades]:
    """Per-symbol breakdown of get_user_stats, ordered by symbol."""
    with get_db() as db:
        calls = _recent_deposit_calls(db, user_id)

    by_symbol: Dict[str, SymbolTrades] = {}
    for call in calls:
        trades = by_symbol.setdefault(call.symbol, SymbolTrades(symbol=call.symbol))
        trades.total_calls += 1
        if call.status == CallStatus.CLOSED and call.pnl_percent is not None:
            trades.closed_calls += 1
            trades.total_pnl += call.pnl_percent
            if call.pnl_percent > 0:
                trades.winning_calls += 1

    for trades in by_symbol.values():
        if trades.closed_calls:
            trades.win_rate = trades.winning_calls / trades.closed_calls * 100
    return [by_symbol[symbol] for symbol in sorted(by_symbol)]


def get_best_worst_calls(user_id: int, limit: int = 3) -> Tuple[List[Call], List[Call]]:
    """Best and worst closed calls of the last STATS_WINDOW_DAYS by P&L."""
    with get_db() as db:
        query = db.query(Call).filter(
            Call.user_id == user_id,
            Call.status == CallStatus.CLOSED,
            Call.pnl_percent.isnot(None),
            Call.opened_at >= _stats_cutoff(),
        )
        best = query.order_by(Call.pnl_percent.desc()).limit(limit).all()
        worst = query.order_by(Call.pnl_percent.asc()).limit(limit).all()
    return best, worst


def open_exposure(calls: Iterable[Call], prices: Dict[str, float]) -> Tuple[float, float]:
    """
    Deposit committed to open calls and their unrealized P&L, both in
    percent of the deposit. Calls without a price in prices are skipped.
    """
    committed = 0.0
    pnl_to_deposit = 0.0
    for call in calls:
        price = prices.get(call.symbol)
        if price is None or not call.deposit_percent:
            continue
        share = call.deposit_percent * (call.size / FULL_SIZE)
        committed += share
        pnl_to_deposit += share * calc_pnl(call.direction, call.entry_price, price) / 100
    return committed, pnl_to_deposit
