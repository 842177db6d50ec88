"""Queue worker entrypoint: delivery, escalation and reminder generation."""

from remindbot.worker import main


if __name__ == "__main__":
    main()
