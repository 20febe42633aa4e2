#!/usr/bin/env python3
"""
Register, inspect, or remove the Telegram webhook for this bot.

Usage:
    python scripts/setup_telegram_webhook.py set https://example.com
    python scripts/setup_telegram_webhook.py info
    python scripts/setup_telegram_webhook.py delete
    python scripts/setup_telegram_webhook.py me

`set` appends TELEGRAM_WEBHOOK_PATH to the given base URL and registers
TELEGRAM_WEBHOOK_SECRET as the secret token when configured.
Reads TELEGRAM_BOT_TOKEN from the environment.
"""

import asyncio
import json
import sys

# Add project root to path
sys.path.insert(0, ".")

from telelink.config import settings
from telelink.errors import TransportError
from telelink.services.telegram_service import TelegramService

USAGE = "Usage: setup_telegram_webhook.py set BASE_URL | info | delete | me"


async def main(argv: list[str]) -> int:
    if not argv:
        print(USAGE)
        return 2

    telegram = TelegramService()
    command = argv[0]

    try:
        if command == "set":
            if len(argv) < 2:
                print(USAGE)
                return 2
            url = argv[1].rstrip("/") + settings.TELEGRAM_WEBHOOK_PATH
            await telegram.set_webhook(url, secret_token=settings.TELEGRAM_WEBHOOK_SECRET or None)
            print(f"Webhook set to {url}")
        elif command == "delete":
            await telegram.delete_webhook()
            print("Webhook deleted (bot can now use polling)")
        elif command == "info":
            info = await telegram.get_webhook_info()
            print(json.dumps(info, indent=2))
            if info.get("last_error_message"):
                print(f"Last error: {info['last_error_message']}")
        elif command == "me":
            print(json.dumps(await telegram.get_me(), indent=2))
        else:
            print(USAGE)
            return 2
    except TransportError as exc:
        print(f"Telegram API call failed: {exc}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:])))
