import datetime as dt
from types import SimpleNamespace

from remindbot.i18n.core import t
from remindbot.services.content import CatalogContentProvider, MessageKind, RoutineCategory


def _routine(category="medication", **kwargs):
    return SimpleNamespace(category=category, title="Vitamin D", icon="💊", dosage="1 tab", **kwargs)


def _reminder(at=dt.time(9, 0)):
    return SimpleNamespace(id=7, scheduled_time=at)


def test_initial_medication_message_has_actions():
    content = CatalogContentProvider(locale="en", postpone_minutes=15).render(
        MessageKind.INITIAL, _routine(), _reminder()
    )

    assert content.text.startswith("💊 Time to take Vitamin D (1 tab).")
    assert "Have a good start of the day!" in content.text
    callbacks = [[a.callback_data for a in row] for row in content.actions]
    assert callbacks == [["rem:ok:7"], ["rem:p:7:15", "rem:skip:7"]]


def test_evening_context_for_medication():
    content = CatalogContentProvider(locale="en").render(MessageKind.INITIAL, _routine(), _reminder(dt.time(21, 0)))
    assert "Almost bedtime" in content.text


def test_last_escalation_has_no_template():
    provider = CatalogContentProvider(locale="en")
    for category in RoutineCategory:
        routine = _routine(category=category.value)
        assert provider.render(MessageKind.ESCALATION_2, routine, _reminder()) is not None
        assert provider.render(MessageKind.escalation(3), routine, _reminder()) is None


def test_auto_skip_notice_has_no_buttons():
    content = CatalogContentProvider(locale="en").render(MessageKind.AUTO_SKIP, _routine(), _reminder())
    assert content.actions == ()


def test_unknown_category_falls_back_to_habit():
    assert RoutineCategory.parse("gym") is RoutineCategory.HABIT
    assert RoutineCategory.parse(" Medication ") is RoutineCategory.MEDICATION


def test_russian_catalog_and_fallback():
    assert t("button.skip", "ru") != t("button.skip", "en")
    assert t("action.postponed", "de", minutes=15, remaining=1).startswith("I'll remind you again in 15 min")
    assert t("missing.key", "en") == "missing.key"
