from __future__ import annotations

from contextlib import contextmanager

from telegram import Update

from remindbot import crud
from remindbot.db import SessionLocal


@contextmanager
def get_db_session():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_user(update: Update, db):
    chat_id = update.effective_chat.id
    return crud.get_or_create_user_by_chat_id(db, chat_id=chat_id)
