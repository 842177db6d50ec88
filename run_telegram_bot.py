"""Telegram bot entrypoint (inline button callbacks).

Loads environment variables from .env automatically (project root).
"""

from remindbot.bot.main import main


if __name__ == "__main__":
    main()
