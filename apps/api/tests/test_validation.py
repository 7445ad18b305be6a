from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from collabtask import validation as v
from collabtask.models import TaskRole


def _fields(errors) -> list[str]:
  return [e.field for e in errors]


@pytest.mark.parametrize("name", ["", "   ", "x", "a" * 101, "Two  spaces"])
def test_bad_names_are_rejected(name: str) -> None:
  assert _fields(v.lane_name(name)) == ["name"]


def test_good_names_pass() -> None:
  assert v.lane_name("  Backlog  ") == []
  assert v.task_title("Ship it") == []


def test_project_name_needs_slug_material() -> None:
  assert v.project_name("Roadmap 2025") == []
  assert _fields(v.project_name("!!!")) == ["name"]
  assert _fields(v.project_name("Bad\x07Bell")) == ["name"]


def test_slugify_strips_accents_and_punctuation() -> None:
  assert v.slugify("  Café Roadmap: Q3! ") == "cafe-roadmap-q3"


def test_user_name_letters_only() -> None:
  assert v.user_name("Ada Lovelace") == []
  assert _fields(v.user_name("R2D2")) == ["name"]


def test_email_rules() -> None:
  assert v.email("ada@example.com") == []
  assert _fields(v.email("ada@example")) == ["email"]
  assert _fields(v.email("")) == ["email"]


def test_password_collects_every_failed_rule() -> None:
  errors = v.password("short")
  assert len(errors) == 4
  assert v.password("Sup3r!secret") == []


def test_text_lengths() -> None:
  assert v.task_description("ok") == []
  assert _fields(v.task_description("a" * (v.DESCRIPTION_MAX + 1))) == ["description"]
  assert _fields(v.note_content("a" * (v.NOTE_MAX + 1))) == ["content"]


def test_due_date_rules() -> None:
  now = datetime(2030, 1, 1, tzinfo=timezone.utc)
  assert v.due_date(None) == []
  assert v.due_date(now + timedelta(days=1), now=now) == []
  assert _fields(v.due_date(now - timedelta(days=1), now=now)) == ["dueDate"]
  assert _fields(v.due_date(datetime(2031, 1, 1), now=now)) == ["dueDate"]
  plus_two = timezone(timedelta(hours=2))
  assert _fields(v.due_date(datetime(2031, 1, 1, tzinfo=plus_two), now=now)) == ["dueDate"]


def test_non_negative_and_enum() -> None:
  assert v.non_negative(None, "position") == []
  assert v.non_negative(0, "position") == []
  assert _fields(v.non_negative(-1, "position")) == ["position"]
  assert v.enum_value("co-owner", TaskRole, "role") == []
  assert _fields(v.enum_value("boss", TaskRole, "role")) == ["role"]


def test_collect_flattens_groups() -> None:
  errors = v.collect(v.lane_name(""), v.non_negative(-3, "position"))
  assert _fields(errors) == ["name", "position"]
