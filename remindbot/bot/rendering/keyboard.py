from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from remindbot.services.content import ReminderContent


def reminder_keyboard(content: ReminderContent) -> InlineKeyboardMarkup | None:
    if not content.actions:
        return None
    return InlineKeyboardMarkup(
        [
            [InlineKeyboardButton(action.label, callback_data=action.callback_data) for action in row]
            for row in content.actions
        ]
    )
