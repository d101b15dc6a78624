# handlers/calls.py
import logging
from telegram import Update
from telegram.ext import CommandHandler, ContextTypes
from handlers.alert import restart_monitor, fetch_quote
from models.call import CallDirection
from services.call_service import (
    open_call,
    close_call,
    close_all_calls,
    update_stop_loss,
    get_call,
    list_open_calls_by_user,
    list_all_open_calls,
    get_user_stats,
    get_all_user_stats,
    get_user_trades_by_symbol,
    get_best_worst_calls,
    open_exposure,
    CallStats,
    STATS_WINDOW_DAYS,
    calc_pnl,
    CallNotFoundError,
    InvalidSizeError,
)
from services.user_service import get_or_create_deposit, reset_deposit
from utils.normalize_data import normalize_symbol, parse_number, format_price, format_change

logger = logging.getLogger(__name__)

OPEN_USAGE = "Usage: /ocall TICKER [long|short] [deposit%] [sl PRICE]\nExample: /ocall btc short 10% sl 70000"


def parse_open_args(args):
    """Returns (symbol, direction, deposit_percent, stop_loss). Raises ValueError."""
    if not args:
        raise ValueError(OPEN_USAGE)

    symbol = normalize_symbol(args[0])
    direction = CallDirection.LONG
    deposit_percent = 0.0
    stop_loss = None

    rest = [a.strip() for a in args[1:] if a.strip()]
    i = 0
    while i < len(rest):
        token = rest[i].lower()
        if token in ("long", "short"):
            direction = CallDirection(token)
        elif token == "sl":
            if i + 1 >= len(rest):
                raise ValueError("Missing stop-loss price after 'sl'")
            stop_loss = parse_number(rest[i + 1])
            i += 1
        else:
            deposit_percent = parse_number(token)
        i += 1

    if not 0 <= deposit_percent <= 100:
        raise ValueError("Deposit percent must be between 0 and 100")
    return symbol, direction, deposit_percent, stop_loss


async def open_call_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    try:
        symbol, direction, deposit_percent, stop_loss = parse_open_args(context.args or [])
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    quote = await fetch_quote(context, symbol)
    if quote is None:
        await update.message.reply_text(f"❌ Could not fetch price for {symbol}, call not opened.")
        return

    user = update.effective_user
    try:
        call = open_call(
            user_id=user.id,
            chat_id=update.effective_chat.id,
            username=user.username,
            symbol=symbol,
            entry_price=quote.price,
            direction=direction,
            deposit_percent=deposit_percent,
            stop_loss_price=stop_loss,
            exchange=quote.exchange,
            market=quote.market,
        )
    except ValueError as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    text = (
        f"📝 Call `{call.id}` opened: {call.direction.value.upper()} `{call.symbol}` "
        f"@ `{format_price(call.entry_price)}`"
    )
    if call.deposit_percent:
        text += f"\nDeposit: {call.deposit_percent:g}%"
    if call.stop_loss_price:
        text += f"\nSL: `{format_price(call.stop_loss_price)}`"
    await update.message.reply_text(text, parse_mode="Markdown")

    await restart_monitor(context)


async def close_call_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/ccall ID [size]"""
    if not context.args:
        await update.message.reply_text("Usage: /ccall CALL_ID [size%]")
        return

    call_id = context.args[0].strip().lower()
    size = None
    if len(context.args) > 1:
        try:
            size = parse_number(context.args[1])
        except ValueError as e:
            await update.message.reply_text(f"⚠️ {e}")
            return

    user_id = update.effective_user.id
    call = get_call(call_id)
    if call is None or call.user_id != user_id:
        await update.message.reply_text(f"⚠️ Call {call_id} not found.")
        return

    quote = await fetch_quote(context, call.symbol)
    if quote is None:
        await update.message.reply_text(f"❌ Could not fetch price for {call.symbol}, call not closed.")
        return

    try:
        closed = close_call(call_id, user_id, quote.price, size)
    except (CallNotFoundError, InvalidSizeError) as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    deposit = get_or_create_deposit(user_id)
    if closed.size > 0:
        state = f"Remaining size: {closed.size:g}%"
    else:
        state = "Call fully closed"
    await update.message.reply_text(
        f"✅ `{closed.id}` {closed.symbol} closed at `{format_price(closed.exit_price)}` "
        f"({format_change(closed.pnl_percent)})\n{state}\n"
        f"Deposit: {deposit.current_deposit:.2f}",
        parse_mode="Markdown"
    )


async def stop_loss_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/sl ID [price] - no price moves the stop to entry, 0 removes it."""
    if not context.args:
        await update.message.reply_text("Usage: /sl CALL_ID [price]")
        return

    call_id = context.args[0].strip().lower()
    user_id = update.effective_user.id
    call = get_call(call_id)
    if call is None or call.user_id != user_id:
        await update.message.reply_text(f"⚠️ Call {call_id} not found.")
        return

    try:
        price = parse_number(context.args[1]) if len(context.args) > 1 else call.entry_price
        updated = update_stop_loss(call_id, user_id, price)
    except (ValueError, CallNotFoundError) as e:
        await update.message.reply_text(f"⚠️ {e}")
        return

    if updated.stop_loss_price:
        await update.message.reply_text(f"🛡 SL for {call_id} set to {format_price(updated.stop_loss_price)}")
    else:
        await update.message.reply_text(f"🛡 SL for {call_id} removed")


async def my_calls_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    user_id = update.effective_user.id
    calls = list_open_calls_by_user(user_id)
    if not calls:
        await update.message.reply_text("📭 No open calls.")
        return

    prices = await live_prices(context, calls)
    lines = []
    for call in calls:
        line = (
            f"`{call.id}` {call.direction.value.upper()} {call.symbol} "
            f"@ {format_price(call.entry_price)} size {call.size:g}%"
        )
        if call.stop_loss_price:
            line += f" SL {format_price(call.stop_loss_price)}"
        price = prices.get(call.symbol)
        if price is not None:
            line += f" → {format_change(calc_pnl(call.direction, call.entry_price, price))}"
        lines.append(line)

    deposit = get_or_create_deposit(user_id)
    lines.append(f"\nDeposit: {deposit.current_deposit:.2f} (start {deposit.initial_deposit:.2f})")
    await update.message.reply_text("\n".join(lines), parse_mode="Markdown")


async def rush_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """Close every open call at the current prices."""
    user_id = update.effective_user.id
    calls = list_open_calls_by_user(user_id)
    if not calls:
        await update.message.reply_text("📭 No open calls.")
        return

    prices = {}
    for symbol in sorted({c.symbol for c in calls}):
        quote = await fetch_quote(context, symbol)
        if quote is not None:
            prices[symbol] = quote.price

    closed = close_all_calls(user_id, prices)
    lines = [
        f"{c.id} {c.symbol} @ {format_price(c.exit_price)} ({format_change(c.pnl_percent)})"
        for c in closed
    ]
    skipped = len(calls) - len(closed)
    if skipped:
        lines.append(f"⚠️ {skipped} call(s) left open: price unavailable")
    deposit = get_or_create_deposit(user_id)
    lines.append(f"Deposit: {deposit.current_deposit:.2f}")
    await update.message.reply_text("🏃 Closed calls\n" + "\n".join(lines))


async def deposit_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/deposit shows the balance; /deposit reset [amount] starts over."""
    user_id = update.effective_user.id
    args = context.args or []
    if args and args[0].lower() == "reset":
        try:
            amount = parse_number(args[1]) if len(args) > 1 else 100.0
            deposit = reset_deposit(user_id, amount)
        except ValueError as e:
            await update.message.reply_text(f"⚠️ {e}")
            return
        await update.message.reply_text(f"💰 Deposit reset to {deposit.current_deposit:.2f}")
        return

    deposit = get_or_create_deposit(user_id)
    change = (deposit.current_deposit - deposit.initial_deposit) / deposit.initial_deposit * 100
    await update.message.reply_text(
        f"💰 Deposit: {deposit.current_deposit:.2f}\n"
        f"Start: {deposit.initial_deposit:.2f} ({format_change(change)})"
    )


def display_name(username, user_id):
    return f"@{username}" if username else f"User_{user_id}"


async def live_prices(context, calls):
    """Current price per symbol of calls: monitor cache first, then the gateway."""
    monitor = context.bot_data.get("monitor")
    prices = {}
    for symbol in sorted({c.symbol for c in calls}):
        price = monitor.get_cached_price(symbol) if monitor else None
        if price is None:
            quote = await fetch_quote(context, symbol)
            price = quote.price if quote else None
        if price is not None:
            prices[symbol] = price
    return prices


def _stats_lines(stats: CallStats):
    lines = [
        f"Calls: {stats.closed_calls} closed / {stats.total_calls} total, "
        f"Winrate: {stats.win_rate:.1f}%",
    ]
    if stats.closed_calls:
        lines.append(f"Total PnL: {format_change(stats.total_pnl)}, Avg: {format_change(stats.avg_pnl)}")
    return lines


async def all_calls_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/allcalls - every open call in the bot, best live P&L first."""
    calls = list_all_open_calls()
    if not calls:
        await update.message.reply_text("📭 No open calls.")
        return

    prices = await live_prices(context, calls)
    rows = []
    for call in calls:
        price = prices.get(call.symbol)
        if price is None:
            continue
        rows.append((calc_pnl(call.direction, call.entry_price, price), call))
    if not rows:
        await update.message.reply_text("❌ Could not fetch prices for the open calls.")
        return

    rows.sort(key=lambda row: row[0], reverse=True)
    lines = [
        f"{i}. {display_name(call.username, call.user_id)} {call.direction.value.upper()} {call.symbol} "
        f"@ {format_price(call.entry_price)} → {format_change(pnl)} (size {call.size:g}%)"
        for i, (pnl, call) in enumerate(rows, 1)
    ]
    skipped = len(calls) - len(rows)
    if skipped:
        lines.append(f"⚠️ {skipped} call(s) hidden: price unavailable")
    await update.message.reply_text("📋 All open calls\n" + "\n".join(lines))


async def call_stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/callstats - leaderboard over calls that committed part of the deposit."""
    stats = {s.user_id: s for s in get_all_user_stats()}
    open_calls = [c for c in list_all_open_calls() if c.deposit_percent and c.deposit_percent > 0]

    by_user = {}
    for call in open_calls:
        by_user.setdefault(call.user_id, []).append(call)
        if call.user_id not in stats:
            # only open calls so far; they still belong on the board
            deposit = get_or_create_deposit(call.user_id)
            stats[call.user_id] = CallStats(
                user_id=call.user_id,
                username=call.username,
                initial_deposit=deposit.initial_deposit,
                current_deposit=deposit.current_deposit,
            )

    if not stats:
        await update.message.reply_text(f"📭 No calls with a deposit share in the last {STATS_WINDOW_DAYS} days.")
        return

    prices = await live_prices(context, open_calls)
    lines = [f"🏆 Call stats ({STATS_WINDOW_DAYS}d)"]
    for i, entry in enumerate(stats.values(), 1):
        lines.append(f"\n{i}. {display_name(entry.username, entry.user_id)}")
        lines.extend(f"   {line}" for line in _stats_lines(entry))
        if entry.current_deposit is not None:
            lines.append(
                f"   Deposit: {entry.current_deposit:.2f} ({format_change(entry.total_return_percent)})"
            )
        committed, pnl_to_deposit = open_exposure(by_user.get(entry.user_id, []), prices)
        if committed:
            lines.append(f"   Open: {committed:g}% of deposit, {format_change(pnl_to_deposit)} unrealized")
    await update.message.reply_text("\n".join(lines))


async def my_call_stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/mycallstats - own track record, best and worst calls, open exposure."""
    user = update.effective_user
    stats = get_user_stats(user.id)
    open_calls = [c for c in list_open_calls_by_user(user.id) if c.deposit_percent and c.deposit_percent > 0]
    if not stats.total_calls and not open_calls:
        await update.message.reply_text(f"📭 No calls with a deposit share in the last {STATS_WINDOW_DAYS} days.")
        return

    lines = [f"📊 {display_name(user.username, user.id)} ({STATS_WINDOW_DAYS}d)"]
    lines.extend(_stats_lines(stats))
    if stats.closed_calls:
        lines.append(f"Best: {format_change(stats.best_call)}, Worst: {format_change(stats.worst_call)}")

    best, worst = get_best_worst_calls(user.id)
    if best:
        lines.append("\nTop calls:")
        lines.extend(f"  {c.symbol} {c.direction.value.upper()} {format_change(c.pnl_percent)}" for c in best)
    if worst:
        lines.append("Worst calls:")
        lines.extend(f"  {c.symbol} {c.direction.value.upper()} {format_change(c.pnl_percent)}" for c in worst)

    prices = await live_prices(context, open_calls)
    committed, pnl_to_deposit = open_exposure(open_calls, prices)
    if committed:
        lines.append(f"\nOpen: {committed:g}% of deposit, {format_change(pnl_to_deposit)} unrealized")

    deposit = get_or_create_deposit(user.id)
    change = (deposit.current_deposit - deposit.initial_deposit) / deposit.initial_deposit * 100
    lines.append(f"Deposit: {deposit.current_deposit:.2f} ({format_change(change)})")
    await update.message.reply_text("\n".join(lines))


async def my_trades_command(update: Update, context: ContextTypes.DEFAULT_TYPE):
    """/mytrades - closed calls per symbol."""
    trades = [t for t in get_user_trades_by_symbol(update.effective_user.id) if t.closed_calls > 0]
    if not trades:
        await update.message.reply_text("📭 No closed calls yet.")
        return

    blocks = [
        f"{t.symbol}\nTrades: {t.closed_calls}\nWinrate: {t.win_rate:.1f}%\nPnL: {format_change(t.total_pnl)}"
        for t in trades
    ]
    await update.message.reply_text(f"📈 Trades by symbol ({STATS_WINDOW_DAYS}d)\n\n" + "\n\n".join(blocks))


open_call_handler = CommandHandler("ocall", open_call_command)
close_call_handler = CommandHandler("ccall", close_call_command)
stop_loss_handler = CommandHandler("sl", stop_loss_command)
my_calls_handler = CommandHandler("mycalls", my_calls_command)
rush_handler = CommandHandler("rush", rush_command)
deposit_handler = CommandHandler("deposit", deposit_command)
all_calls_handler = CommandHandler("allcalls", all_calls_command)
call_stats_handler = CommandHandler("callstats", call_stats_command)
my_call_stats_handler = CommandHandler("mycallstats", my_call_stats_command)
my_trades_handler = CommandHandler("mytrades", my_trades_command)
