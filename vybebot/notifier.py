"""
Alert notifications: render a trigger event and deliver it over Telegram.

Delivery failures (blocked bot, deleted chat, network) are logged and
reported as False so the scheduler keeps going and does not record the
alert as triggered.
"""

import logging
from html import escape
from typing import List

from telegram import Bot
from telegram.constants import ParseMode

from vybebot.formatting import code, format_number, format_price, short_address
from vybebot.models import (
    ActiveUsersCondition,
    BalanceCondition,
    PriceCondition,
    TriggerEvent,
    TVLCondition,
)

logger = logging.getLogger(__name__)


def render_alert_message(event: TriggerEvent) -> str:
    """
    Render a triggered alert as Telegram HTML.

    Args:
        event: The trigger event

    Returns:
        Formatted message string
    """
    condition = event.condition
    phrase = event.operator.phrase
    lines: List[str] = []

    if isinstance(condition, PriceCondition):
        lines.append("<b>💰 Price Alert</b>")
        lines.append(f"Token: {code(short_address(condition.asset_mint))}")
        if condition.quote_mint:
            lines.append(f"Quote: {code(short_address(condition.quote_mint))}")
        if condition.market_id:
            lines.append(f"Market: {code(short_address(condition.market_id))}")
        lines.append(f"Condition: price {phrase} {format_price(condition.threshold)}")
        lines.append(f"Current price: <b>{format_price(event.current_value)}</b>")

    elif isinstance(condition, BalanceCondition):
        lines.append("<b>💼 Balance Alert</b>")
        lines.append(f"Wallet: {code(short_address(condition.wallet_address))}")
        lines.append(f"Asset: {code(short_address(condition.asset_mint))}")
        lines.append(f"Condition: balance {phrase} {format_number(condition.threshold)}")
        lines.append(f"Current balance: <b>{format_number(event.current_value)}</b>")

    elif isinstance(condition, TVLCondition):
        lines.append("<b>📈 TVL Alert</b>")
        lines.append(f"Program: {code(short_address(condition.program_id))}")
        lines.append(f"Condition: TVL {phrase} ${format_number(condition.threshold)}")
        lines.append(f"Current TVL: <b>${format_number(event.current_value)}</b>")

    elif isinstance(condition, ActiveUsersCondition):
        lines.append("<b>👥 Active Users Alert</b>")
        lines.append(f"Program: {code(short_address(condition.program_id))}")
        lines.append(f"Timeframe: {escape(condition.timeframe)}")
        lines.append(f"Condition: active users {phrase} {format_number(condition.threshold, 0)}")
        lines.append(f"Current active users: <b>{format_number(event.current_value, 0)}</b>")

    else:
        raise TypeError(f"Unknown condition type: {type(condition).__name__}")

    if event.label:
        lines.insert(1, f"<i>{escape(event.label)}</i>")

    return "\n".join(lines)


class TelegramSink:
    """Chat notification sink backed by a python-telegram-bot Bot."""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def send(self, chat_id: int, text: str) -> bool:
        try:
            await self.bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.HTML)
        except Exception as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
            return False
        return True


class Notifier:
    """Render trigger events and hand them to a chat sink."""

    def __init__(self, sink):
        self.sink = sink

    async def notify(self, event: TriggerEvent, chat_id: int) -> bool:
        """
        Deliver one alert notification.

        Returns:
            True if the chat layer accepted the message
        """
        try:
            text = render_alert_message(event)
            delivered = await self.sink.send(chat_id, text)
        except Exception as e:
            logger.error(f"Notification for alert {event.alert_id} failed: {e}", exc_info=True)
            return False

        if delivered:
            logger.debug(f"Notification sent to {chat_id} for alert {event.alert_id}")
        else:
            logger.warning(f"Notification for alert {event.alert_id} to {chat_id} was not delivered")
        return bool(delivered)
