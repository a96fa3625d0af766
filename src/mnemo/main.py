"""Mnemo entry point."""

import logging
import sys

from dotenv import find_dotenv, load_dotenv

USAGE = """Usage: mnemo <command>

Commands:
  bot          Run the Telegram bot"""


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command = sys.argv[1] if len(sys.argv) > 1 else ""

    if command == "bot":
        from .telegram import TelegramBot

        bot = TelegramBot()
        bot.run()
        return

    print(USAGE)
    sys.exit(0 if command in ("-h", "--help", "help") else 2)


if __name__ == "__main__":
    main()
