#!/usr/bin/env python3
"""
Telegram Notifier

Delivers messages to one fixed Telegram chat through the Bot API. When a media
reference (animation URL or file_id) is given the message is sent as the
animation's caption; if that fails it falls back to a plain text message.

Send failures are logged and reported as `False`, never raised, so a messaging
outage cannot crash the watcher.
"""

import logging
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
MAX_CAPTION_LENGTH = 1024
MAX_MESSAGE_LENGTH = 4096


class TelegramNotifier:
    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        disabled: bool = False,
        parse_mode: str = "Markdown",
        timeout_s: int = 10,
        session: Optional[requests.Session] = None,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.disabled = disabled
        self.parse_mode = parse_mode
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

        if disabled:
            logger.warning("Telegram notifications disabled; messages will only be logged")
        elif not bot_token or not chat_id:
            logger.warning("Telegram bot token or chat id not configured; notifications will fail")

    def send_message(self, text: str, media_ref: Optional[str] = None) -> bool:
        """Send `text` (as an animation caption when `media_ref` is set); True on delivery"""
        if self.disabled:
            flat_text = text.replace("\n", " | ")
            logger.info(f"[telegram disabled] {flat_text}")
            return True

        if not self.bot_token or not self.chat_id:
            logger.error("Cannot send Telegram message: bot token or chat id missing")
            return False

        if media_ref and len(text) <= MAX_CAPTION_LENGTH:
            sent = self._call("sendAnimation", {
                "chat_id": self.chat_id,
                "animation": media_ref,
                "caption": text,
                "parse_mode": self.parse_mode,
            })
            if sent:
                return True
            logger.warning("Failed to send animation, falling back to text")

        return self._call("sendMessage", {
            "chat_id": self.chat_id,
            "text": text[:MAX_MESSAGE_LENGTH],
            "parse_mode": self.parse_mode,
            "disable_web_page_preview": True,
        })

    def _call(self, method: str, payload: Dict[str, Any]) -> bool:
        url = f"{TELEGRAM_API_URL}/bot{self.bot_token}/{method}"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout_s)
        except requests.RequestException as exc:
            # the exception text contains the URL, and with it the bot token
            logger.error(f"Telegram {method} request failed: {type(exc).__name__}")
            return False

        if response.status_code == 429:
            retry_after = None
            try:
                retry_after = response.json().get("parameters", {}).get("retry_after")
            except ValueError:
                pass
            logger.warning(f"Telegram {method} rate limited (retry after {retry_after}s)")
            return False

        if response.status_code >= 400:
            logger.error(f"Telegram {method} failed (status {response.status_code}): {response.text[:500]}")
            return False

        try:
            body = response.json()
        except ValueError:
            logger.error(f"Telegram {method} returned a non-JSON response")
            return False

        if not body.get("ok", False):
            logger.error(f"Telegram {method} rejected: {body.get('description')}")
            return False

        return True

    def close(self) -> None:
        self.session.close()
