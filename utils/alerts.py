"""
Alerts - Telegram notifications for events that need a human.

Setup:
1. Create a Telegram bot via @BotFather
2. Get your chat ID via @userinfobot
3. Set in .env:
   TELEGRAM_BOT_TOKEN=your_bot_token
   TELEGRAM_CHAT_ID=your_chat_id

Without both values every alert is a no-op (the event is still logged).
"""
import threading
from loguru import logger

from config.settings import get_settings
from utils.platform import now_utc


def _send_telegram(message: str, retries: int = 1):
    """Send a Telegram message (non-blocking, with retry)."""
    settings = get_settings()
    token, chat_id = settings.telegram_bot_token, settings.telegram_chat_id
    if not token or not chat_id:
        return

    # Environment tag: "PROD" on the server, "DEV" locally
    tagged_message = f"[{settings.alert_env}] {message}"

    def _do_send():
        import time as _time
        for attempt in range(retries + 1):
            try:
                import requests
                url = f"https://api.telegram.org/bot{token}/sendMessage"
                resp = requests.post(url, json={
                    "chat_id": chat_id,
                    "text": tagged_message,
                    "parse_mode": "HTML"
                }, timeout=10)
                if resp.status_code == 200:
                    return
                logger.warning(f"Telegram HTTP {resp.status_code} (attempt {attempt+1})")
            except Exception as e:
                logger.warning(f"Telegram send failed (attempt {attempt+1}): {e}")
            if attempt < retries:
                _time.sleep(2)

    threading.Thread(target=_do_send, daemon=True).start()


def alert_trace_write_failed(run_id: str, error: str):
    """A run finished but its audit trace could not be persisted."""
    msg = (
        f"<b>TRACE WRITE FAILED</b>\n"
        f"Run: {run_id}\n"
        f"{error[:200]}\n"
        f"Audit trail is incomplete!"
    )
    _send_telegram(msg, retries=2)


def alert_order_failed(order_id: str, symbol: str, reason: str):
    """Order moved to FAILED after a system error."""
    msg = (
        f"<b>ORDER FAILED</b> {symbol}\n"
        f"Order: {order_id}\n"
        f"Reason: {reason[:200]}"
    )
    _send_telegram(msg)


def alert_order_approved(order_id: str, symbol: str, side: str, quantity: int,
                         environment: str, approver: str):
    """Live orders are announced on approval."""
    msg = (
        f"<b>APPROVED {side.upper()} {symbol}</b> ({environment.upper()})\n"
        f"Qty: {quantity} | Order: {order_id}\n"
        f"By: {approver} at {now_utc().strftime('%H:%M:%S')} UTC"
    )
    _send_telegram(msg)
