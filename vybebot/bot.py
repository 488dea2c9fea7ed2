#!/usr/bin/env python3
"""
Vybe alert bot - Telegram bot for Solana analytics and threshold alerts

Users can look up token prices, program health, wallet holdings and market
stats, keep a short list of wallets, and create alerts on token price,
wallet balance, program TVL or program active users. The alert scheduler
checks every enabled alert on a fixed interval and messages the owner when
a threshold is crossed.
"""

import asyncio
import logging
import signal
from html import escape
from typing import List, Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from vybebot import config
from vybebot.errors import ProviderUnavailable
from vybebot.formatting import code, format_number, format_price, short_address
from vybebot.models import (
    DEFAULT_TIMEFRAME,
    NATIVE_ASSET,
    ActiveUsersCondition,
    Alert,
    AlertKind,
    BalanceCondition,
    Operator,
    PriceCondition,
    TVLCondition,
)
from vybebot.notifier import Notifier, TelegramSink
from vybebot.scheduler import AlertScheduler
from vybebot.storage import CsvStore, validate_solana_address
from vybebot.vybe_api import TIMEFRAME_DAYS, MarketPair, VybeClient, WalletHoldings

logger = logging.getLogger(__name__)

# Conversation states
WAITING_FOR_WALLET = 1
CHOOSE_KIND, ENTER_RESOURCE, ENTER_ASSET, ENTER_THRESHOLD, CHOOSE_OPERATOR, ENTER_LABEL = range(10, 16)

KIND_TITLES = {
    AlertKind.PRICE: "💰 Price",
    AlertKind.BALANCE: "💼 Balance",
    AlertKind.TVL: "📈 TVL",
    AlertKind.ACTIVE_USERS: "👥 Active Users",
}

HELP_TEXT = (
    "<b>Commands</b>\n"
    "/price &lt;mint&gt; - Token price\n"
    "/program &lt;program id&gt; - Program TVL and active users\n"
    "/holdings [number or address] - Wallet holdings\n"
    "/markets [volume|gainers|losers] - Market stats\n"
    "/wallet - Add or remove wallets\n"
    "/alerts - List your alerts\n"
    "/newalert - Create an alert\n"
    "/delalert &lt;number&gt; - Delete an alert\n"
    "/cancel - Cancel current action"
)


def describe_alert(alert: Alert) -> str:
    """One-line summary of an alert for the /alerts list."""
    condition = alert.condition
    phrase = condition.operator.phrase

    if isinstance(condition, PriceCondition):
        text = f"Price of {code(short_address(condition.asset_mint))} {phrase} {format_price(condition.threshold)}"
    elif isinstance(condition, BalanceCondition):
        text = (f"{code(short_address(condition.asset_mint))} balance in "
                f"{code(short_address(condition.wallet_address))} {phrase} {format_number(condition.threshold)}")
    elif isinstance(condition, TVLCondition):
        text = f"TVL of {code(short_address(condition.program_id))} {phrase} ${format_number(condition.threshold)}"
    else:
        text = (f"{condition.timeframe} active users of {code(short_address(condition.program_id))} "
                f"{phrase} {format_number(condition.threshold, 0)}")

    if alert.label:
        text += f" ({escape(alert.label)})"
    if not alert.enabled:
        text += " [disabled]"
    return text


def render_holdings(summary: WalletHoldings, limit: int = 10) -> str:
    """Wallet holdings sorted by USD value, largest first."""
    lines = [
        f"💼 <b>Wallet</b> {code(short_address(summary.address))}",
        f"Total value: <b>${format_number(summary.total_usd)}</b>",
    ]
    if not summary.holdings:
        lines.append("No token holdings found.")
        return "\n".join(lines)

    ranked = sorted(summary.holdings, key=lambda h: h.value_usd, reverse=True)
    for i, holding in enumerate(ranked[:limit]):
        lines.append(
            f"{i + 1}. <b>{escape(holding.symbol)}</b> {format_number(holding.amount, 4)} "
            f"(${format_number(holding.value_usd)})"
        )
    if len(ranked) > limit:
        lines.append(f"... and {len(ranked) - limit} more")
    return "\n".join(lines)


MARKET_VIEWS = ("volume", "gainers", "losers")

MARKET_TITLES = {
    "volume": "🔄 Top Market Pairs by Volume (24h)",
    "gainers": "📈 Top Gainers (24h)",
    "losers": "📉 Top Losers (24h)",
}


def market_keyboard() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[
        InlineKeyboardButton("Volume", callback_data="market:volume"),
        InlineKeyboardButton("Gainers", callback_data="market:gainers"),
        InlineKeyboardButton("Losers", callback_data="market:losers"),
    ]])


def rank_markets(pairs: List[MarketPair], view: str, limit: int = 10) -> List[MarketPair]:
    """
    Pick the pairs shown for a market view.

    volume: highest 24h volume first. gainers/losers: only pairs that moved
    in that direction, biggest move first.
    """
    if view == "volume":
        ranked = sorted(pairs, key=lambda p: p.volume_24h or 0, reverse=True)
    elif view == "gainers":
        moved = [p for p in pairs if p.price_change_24h is not None and p.price_change_24h > 0]
        ranked = sorted(moved, key=lambda p: p.price_change_24h, reverse=True)
    elif view == "losers":
        moved = [p for p in pairs if p.price_change_24h is not None and p.price_change_24h < 0]
        ranked = sorted(moved, key=lambda p: p.price_change_24h)
    else:
        raise ValueError(f"Unknown market view: {view!r}")
    return ranked[:limit]


def render_markets(view: str, pairs: List[MarketPair]) -> str:
    lines = [f"<b>{MARKET_TITLES[view]}</b>", ""]
    if not pairs:
        lines.append("No market data available at this time.")

    for i, pair in enumerate(pairs):
        name = f"{escape(pair.base_symbol)}/{escape(pair.quote_symbol)}"
        price = format_price(pair.last_price) if pair.last_price is not None else "n/a"
        if view == "volume":
            volume = f"${format_number(pair.volume_24h)}" if pair.volume_24h is not None else "n/a"
            lines.append(f"{i + 1}. <b>{name}</b> - {price} (Vol: {volume})")
        else:
            lines.append(f"{i + 1}. <b>{name}</b> - {pair.price_change_24h:+.2f}% ({price})")

    lines += ["", "<i>Data provided by Vybe API</i>"]
    return "\n".join(lines)


class BotHandlers:
    """Telegram command handlers bound to one store and one data provider."""

    def __init__(self, store: CsvStore, provider: VybeClient):
        self.store = store
        self.provider = provider

    def register(self, app: Application):
        app.add_handler(CommandHandler("start", self.cmd_start))
        app.add_handler(CommandHandler("help", self.cmd_help))
        app.add_handler(CommandHandler("price", self.cmd_price))
        app.add_handler(CommandHandler("program", self.cmd_program))
        app.add_handler(CommandHandler("holdings", self.cmd_holdings))
        app.add_handler(CommandHandler("markets", self.cmd_markets))
        app.add_handler(CallbackQueryHandler(self.on_market_view, pattern=r"^market:"))
        app.add_handler(CommandHandler("alerts", self.cmd_alerts))
        app.add_handler(CommandHandler("delalert", self.cmd_delalert))

        app.add_handler(ConversationHandler(
            entry_points=[CommandHandler("wallet", self.cmd_wallet_start)],
            states={
                WAITING_FOR_WALLET: [
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.cmd_wallet_input)
                ],
            },
            fallbacks=[CommandHandler("cancel", self.cmd_cancel)],
            conversation_timeout=config.CONVERSATION_TIMEOUT_SEC,
        ))

        app.add_handler(ConversationHandler(
            entry_points=[CommandHandler("newalert", self.cmd_newalert)],
            states={
                CHOOSE_KIND: [CallbackQueryHandler(self.on_kind, pattern=r"^kind:")],
                ENTER_RESOURCE: [MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_resource)],
                ENTER_ASSET: [MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_asset)],
                ENTER_THRESHOLD: [MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_threshold)],
                CHOOSE_OPERATOR: [CallbackQueryHandler(self.on_operator, pattern=r"^op:")],
                ENTER_LABEL: [
                    CommandHandler("skip", self.on_label),
                    MessageHandler(filters.TEXT & ~filters.COMMAND, self.on_label),
                ],
            },
            fallbacks=[CommandHandler("cancel", self.cmd_cancel)],
            conversation_timeout=config.CONVERSATION_TIMEOUT_SEC,
        ))

    # ------------------------------------------------------------------
    # Basic commands
    # ------------------------------------------------------------------

    async def cmd_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /start command - show welcome message."""
        await update.message.reply_text(
            "👋 Welcome to the Vybe alert bot!\n\n"
            "Look up Solana tokens and programs, and get a message when a price, "
            "balance, TVL or active-user count crosses your threshold.\n\n"
            f"{HELP_TEXT}",
            parse_mode=ParseMode.HTML,
        )

    async def cmd_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        await update.message.reply_text(HELP_TEXT, parse_mode=ParseMode.HTML)

    async def cmd_price(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /price <mint>."""
        if not context.args or not validate_solana_address(context.args[0]):
            await update.message.reply_text("Usage: /price <token mint address>")
            return

        mint = context.args[0]
        try:
            details = await self.provider.get_token_details(mint)
            price = details.get("price")
            if price is None:
                price = await self.provider.get_price(mint)
            price = float(price)
        except (ProviderUnavailable, TypeError, ValueError) as e:
            logger.warning(f"/price failed for {mint}: {e}")
            await update.message.reply_text("Could not fetch price data right now. Please try again later.")
            return

        symbol = str(details.get("symbol") or short_address(mint))
        await update.message.reply_text(
            f"<b>{escape(symbol)}</b>\nMint: {code(mint)}\nPrice: <b>{format_price(price)}</b>",
            parse_mode=ParseMode.HTML,
        )

    async def cmd_program(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /program <program id> - TVL and 24h active users."""
        if not context.args or not validate_solana_address(context.args[0]):
            await update.message.reply_text("Usage: /program <program id>")
            return

        program_id = context.args[0]
        tvl, users = await asyncio.gather(
            self.provider.get_tvl(program_id),
            self.provider.get_active_users(program_id, DEFAULT_TIMEFRAME),
            return_exceptions=True,
        )

        tvl_text = "n/a" if isinstance(tvl, Exception) else f"${format_number(tvl)}"
        users_text = "n/a" if isinstance(users, Exception) else format_number(users, 0)
        await update.message.reply_text(
            f"<b>📊 Program Health</b>\nProgram: {code(short_address(program_id))}\n"
            f"TVL: {tvl_text}\nActive users (24h): {users_text}",
            parse_mode=ParseMode.HTML,
        )

    async def cmd_holdings(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /holdings [number|address] - holdings of one or all saved wallets."""
        user_id = update.effective_user.id
        wallets = [addr for addr, _ in self.store.get_user_wallets(user_id)]

        if context.args:
            arg = context.args[0].strip()
            if arg.isdigit():
                index = int(arg)
                if index < 1 or index > len(wallets):
                    await update.message.reply_text(f"Invalid number. You have {len(wallets)} saved wallet(s).")
                    return
                targets = [wallets[index - 1]]
            elif validate_solana_address(arg):
                targets = [arg]
            else:
                await update.message.reply_text("Usage: /holdings [wallet number or Solana address]")
                return
        elif wallets:
            targets = wallets
        else:
            await update.message.reply_text("You have no saved wallets. Add one with /wallet or pass an address.")
            return

        results = await asyncio.gather(
            *(self.provider.get_wallet_holdings(address) for address in targets),
            return_exceptions=True,
        )

        sections = []
        for address, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"/holdings failed for {address}: {result}")
                sections.append(f"💼 {code(short_address(address))}\nCould not fetch holdings right now.")
            else:
                sections.append(render_holdings(result))

        await update.message.reply_text("\n\n".join(sections), parse_mode=ParseMode.HTML)

    async def cmd_markets(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /markets [volume|gainers|losers]."""
        view = context.args[0].lower() if context.args else "volume"
        if view not in MARKET_VIEWS:
            await update.message.reply_text(f"Usage: /markets [{'|'.join(MARKET_VIEWS)}]")
            return

        text = await self._market_text(view)
        await update.message.reply_text(text, parse_mode=ParseMode.HTML, reply_markup=market_keyboard())

    async def on_market_view(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        view = query.data.split(":", 1)[1]
        if view not in MARKET_VIEWS:
            return
        text = await self._market_text(view)
        await query.edit_message_text(text, parse_mode=ParseMode.HTML, reply_markup=market_keyboard())

    async def _market_text(self, view: str) -> str:
        try:
            pairs = await self.provider.get_market_pairs()
        except ProviderUnavailable as e:
            logger.warning(f"/markets failed: {e}")
            return "Could not fetch market data right now. Please try again later."
        return render_markets(view, rank_markets(pairs, view))

    # ------------------------------------------------------------------
    # Wallets
    # ------------------------------------------------------------------

    async def cmd_wallet_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /wallet command - show wallets and wait for an address or a number."""
        user_id = update.effective_user.id
        wallets = self.store.get_user_wallets(user_id)

        if wallets:
            wallet_list = "\n".join(f"{i + 1}. {short_address(addr)}" for i, (addr, _) in enumerate(wallets))
            await update.message.reply_text(
                f"Your current wallets ({len(wallets)}/{self.store.max_wallets}):\n{wallet_list}\n\n"
                f"Reply with:\n"
                f"• A Solana address to ADD a wallet\n"
                f"• A number (1-{len(wallets)}) to REMOVE that wallet\n"
                f"• /cancel to exit"
            )
        else:
            await update.message.reply_text(
                "You have no wallets yet.\n\n"
                "Send me a Solana wallet address to add:"
            )

        return WAITING_FOR_WALLET

    async def cmd_wallet_input(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle wallet address or number input."""
        user_id = update.effective_user.id
        user_input = update.message.text.strip()

        if user_input.isdigit():
            wallets = self.store.get_user_wallets(user_id)
            wallet_number = int(user_input)
            if wallet_number < 1 or wallet_number > len(wallets):
                await update.message.reply_text(
                    f"Invalid number. Please enter 1-{len(wallets)} to remove, or an address to add.\n\n"
                    "Or send /cancel to abort."
                )
                return WAITING_FOR_WALLET

            address = wallets[wallet_number - 1][0]
            if self.store.remove_wallet(user_id, address):
                await update.message.reply_text(
                    f"✓ Wallet removed: {short_address(address)}\n\n"
                    f"You now have {len(wallets) - 1}/{self.store.max_wallets} wallets."
                )
            else:
                await update.message.reply_text("Failed to remove wallet. Please try again.")
            return ConversationHandler.END

        if not validate_solana_address(user_input):
            await update.message.reply_text(
                "Invalid input. Please send:\n"
                "• A valid Solana address to add\n"
                "• A number to remove a wallet\n"
                "• /cancel to abort"
            )
            return WAITING_FOR_WALLET

        success, removed_address = self.store.add_wallet(user_id, user_input)
        if not success:
            await update.message.reply_text("This wallet is already in your list!")
            return ConversationHandler.END

        if removed_address:
            await update.message.reply_text(
                f"✓ Wallet added: {short_address(user_input)}\n\n"
                f"⚠️ You had {self.store.max_wallets} wallets. Removed oldest:\n"
                f"{short_address(removed_address)}"
            )
        else:
            wallets = self.store.get_user_wallets(user_id)
            await update.message.reply_text(
                f"✓ Wallet added: {short_address(user_input)}\n\n"
                f"You now have {len(wallets)}/{self.store.max_wallets} wallets."
            )
        return ConversationHandler.END

    async def cmd_cancel(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        context.user_data.pop("draft", None)
        await update.message.reply_text("Cancelled.")
        return ConversationHandler.END

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    async def cmd_alerts(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /alerts - list the user's alerts."""
        alerts = self.store.get_user_alerts(update.effective_user.id)
        if not alerts:
            await update.message.reply_text("You have no alerts. Create one with /newalert")
            return

        lines = ["<b>🚨 Your alerts</b>", ""]
        lines += [f"{i + 1}. {describe_alert(alert)}" for i, alert in enumerate(alerts)]
        lines += ["", "Delete one with /delalert &lt;number&gt;"]
        await update.message.reply_text("\n".join(lines), parse_mode=ParseMode.HTML)

    async def cmd_delalert(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /delalert <number>."""
        user_id = update.effective_user.id
        alerts = self.store.get_user_alerts(user_id)

        if not context.args or not context.args[0].isdigit():
            await update.message.reply_text("Usage: /delalert <number> (see /alerts)")
            return

        number = int(context.args[0])
        if number < 1 or number > len(alerts):
            await update.message.reply_text(f"Invalid number. You have {len(alerts)} alert(s).")
            return

        alert = alerts[number - 1]
        if self.store.delete_alert(user_id, alert.id):
            await update.message.reply_text(
                f"✓ Deleted: {describe_alert(alert)}", parse_mode=ParseMode.HTML
            )
        else:
            await update.message.reply_text("Failed to delete alert. Please try again.")

    async def cmd_newalert(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        """Handle /newalert - ask which kind of alert to create."""
        context.user_data["draft"] = {}
        keyboard = InlineKeyboardMarkup([
            [
                InlineKeyboardButton(KIND_TITLES[AlertKind.PRICE], callback_data=f"kind:{AlertKind.PRICE.value}"),
                InlineKeyboardButton(KIND_TITLES[AlertKind.BALANCE], callback_data=f"kind:{AlertKind.BALANCE.value}"),
            ],
            [
                InlineKeyboardButton(KIND_TITLES[AlertKind.TVL], callback_data=f"kind:{AlertKind.TVL.value}"),
                InlineKeyboardButton(KIND_TITLES[AlertKind.ACTIVE_USERS],
                                     callback_data=f"kind:{AlertKind.ACTIVE_USERS.value}"),
            ],
        ])
        await update.message.reply_text("What should the alert watch?", reply_markup=keyboard)
        return CHOOSE_KIND

    async def on_kind(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        kind = AlertKind(query.data.split(":", 1)[1])
        context.user_data["draft"] = {"kind": kind}

        if kind is AlertKind.PRICE:
            prompt = "Send the token mint address to track."
        elif kind is AlertKind.BALANCE:
            wallets = self.store.get_user_wallets(update.effective_user.id)
            prompt = "Send the wallet address to watch"
            if wallets:
                wallet_list = "\n".join(f"{i + 1}. {short_address(addr)}" for i, (addr, _) in enumerate(wallets))
                prompt += f", or the number of one of your wallets:\n{wallet_list}"
            else:
                prompt += "."
        elif kind is AlertKind.TVL:
            prompt = "Send the program id."
        else:
            prompt = f"Send the program id, optionally followed by a timeframe ({', '.join(TIMEFRAME_DAYS)})."

        await query.edit_message_text(f"{KIND_TITLES[kind]} alert\n\n{prompt}")
        return ENTER_RESOURCE

    async def on_resource(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        draft = context.user_data.setdefault("draft", {})
        kind = draft.get("kind")
        parts = update.message.text.split()
        resource = parts[0] if parts else ""

        if kind is AlertKind.BALANCE and resource.isdigit():
            wallets = self.store.get_user_wallets(update.effective_user.id)
            index = int(resource)
            if 1 <= index <= len(wallets):
                resource = wallets[index - 1][0]

        if not validate_solana_address(resource):
            await update.message.reply_text("That doesn't look like a Solana address. Please try again, or /cancel.")
            return ENTER_RESOURCE

        draft["resource"] = resource

        if kind is AlertKind.ACTIVE_USERS:
            timeframe = parts[1] if len(parts) > 1 else DEFAULT_TIMEFRAME
            if timeframe not in TIMEFRAME_DAYS:
                await update.message.reply_text(f"Timeframe must be one of {', '.join(TIMEFRAME_DAYS)}.")
                return ENTER_RESOURCE
            draft["timeframe"] = timeframe

        if kind is AlertKind.BALANCE:
            await update.message.reply_text(f"Send the token mint to watch, or {NATIVE_ASSET} for native SOL.")
            return ENTER_ASSET

        await update.message.reply_text("Send the threshold value, e.g. 2.5")
        return ENTER_THRESHOLD

    async def on_asset(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        asset = update.message.text.strip()
        if asset.upper() == NATIVE_ASSET:
            asset = NATIVE_ASSET
        elif not validate_solana_address(asset):
            await update.message.reply_text(f"Send a token mint address or {NATIVE_ASSET}, or /cancel.")
            return ENTER_ASSET

        context.user_data["draft"]["asset"] = asset
        await update.message.reply_text("Send the balance threshold, e.g. 100")
        return ENTER_THRESHOLD

    async def on_threshold(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        threshold = parse_threshold(update.message.text)
        if threshold is None:
            await update.message.reply_text("Invalid threshold. Please enter a positive number.")
            return ENTER_THRESHOLD

        context.user_data["draft"]["threshold"] = threshold
        keyboard = InlineKeyboardMarkup([[
            InlineKeyboardButton("Above threshold", callback_data=f"op:{Operator.GREATER_THAN.value}"),
            InlineKeyboardButton("Below threshold", callback_data=f"op:{Operator.LESS_THAN.value}"),
        ]])
        await update.message.reply_text(
            f"Notify when the value goes above or below {threshold:g}?", reply_markup=keyboard
        )
        return CHOOSE_OPERATOR

    async def on_operator(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        query = update.callback_query
        await query.answer()

        context.user_data["draft"]["operator"] = Operator(query.data.split(":", 1)[1])
        await query.edit_message_text("Send a short label for this alert, or /skip.")
        return ENTER_LABEL

    async def on_label(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        text = update.message.text.strip()
        label = None if text.startswith("/skip") else text[:64]

        draft = context.user_data.pop("draft", {})
        try:
            condition = build_condition(draft)
        except (KeyError, ValueError) as e:
            logger.warning(f"Incomplete alert draft for user {update.effective_user.id}: {e}")
            await update.message.reply_text("Something went wrong building the alert. Please start again with /newalert")
            return ConversationHandler.END

        alert = self.store.add_alert(update.effective_user.id, condition, label)
        await update.message.reply_text(
            f"✓ Alert created: {describe_alert(alert)}\n\nChecked every {config.ALERT_INTERVAL_MIN:g} minutes.",
            parse_mode=ParseMode.HTML,
        )
        return ConversationHandler.END


def parse_threshold(text: str) -> Optional[float]:
    """Parse a positive number, allowing '$' and thousands separators."""
    try:
        value = float(text.strip().lstrip("$").replace(",", ""))
    except ValueError:
        return None
    if value <= 0 or value != value or value == float("inf"):
        return None
    return value


def build_condition(draft: dict):
    """Turn a finished /newalert draft into a condition variant."""
    kind = draft["kind"]
    threshold = draft["threshold"]
    operator = draft["operator"]

    if kind is AlertKind.PRICE:
        return PriceCondition(asset_mint=draft["resource"], threshold=threshold, operator=operator)
    if kind is AlertKind.BALANCE:
        return BalanceCondition(
            wallet_address=draft["resource"], asset_mint=draft["asset"], threshold=threshold, operator=operator
        )
    if kind is AlertKind.TVL:
        return TVLCondition(program_id=draft["resource"], threshold=threshold, operator=operator)
    if kind is AlertKind.ACTIVE_USERS:
        return ActiveUsersCondition(
            program_id=draft["resource"],
            threshold=threshold,
            operator=operator,
            timeframe=draft.get("timeframe", DEFAULT_TIMEFRAME),
        )
    raise ValueError(f"Unknown alert kind: {kind!r}")


# ============================================================================
# Main Entry Point
# ============================================================================

async def main():
    """Main entry point."""
    config.setup_logging()

    if not config.TELEGRAM_BOT_TOKEN:
        logger.error("TELEGRAM_BOT_TOKEN not set")
        return
    if not config.VYBE_API_KEY:
        logger.warning("VYBE_API_KEY not set, Vybe API requests will likely be rejected")

    logger.info("Starting Vybe alert bot")
    logger.info(f"Alert interval: {config.ALERT_INTERVAL_MIN} min")
    logger.info(f"Data directory: {config.DATA_DIR}")

    store = CsvStore(config.DATA_DIR)
    provider = VybeClient()

    app = Application.builder().token(config.TELEGRAM_BOT_TOKEN).build()
    BotHandlers(store, provider).register(app)

    scheduler = AlertScheduler(store, provider, Notifier(TelegramSink(app.bot)))

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    await app.initialize()
    await app.start()
    await app.updater.start_polling(drop_pending_updates=True)

    logger.info("Bot started, beginning alert scheduler")
    scheduler.start(config.ALERT_INTERVAL_MIN)

    try:
        await stop_event.wait()
        logger.info("Shutting down...")
    finally:
        scheduler.stop()
        await scheduler.wait_stopped()
        await app.updater.stop()
        await app.stop()
        await app.shutdown()
        await provider.aclose()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
