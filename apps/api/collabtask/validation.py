"""
Field rules for write inputs.

Every rule is a plain function returning a list of `FieldError`; an empty list means the
value is acceptable. Services combine the rules they need with `collect` and hand the
result to the write pipeline, which rejects the request before touching storage.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from enum import Enum

from collabtask.errors import FieldError

NAME_MIN = 2
NAME_MAX = 100
EMAIL_MAX = 256
PASSWORD_MIN = 8
PASSWORD_MAX = 256
DESCRIPTION_MAX = 2000
NOTE_MAX = 500

_CONSECUTIVE_WS = re.compile(r"\s{2,}")
_USER_NAME_RE = re.compile(r"^[A-Za-z\s]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SLUG_INVALID = re.compile(r"[^a-z0-9]+")


def collect(*groups: Iterable[FieldError]) -> list[FieldError]:
  out: list[FieldError] = []
  for g in groups:
    out.extend(g)
  return out


def _text(value: str | None, field: str, label: str, *, min_len: int, max_len: int) -> list[FieldError]:
  s = (value or "").strip()
  if not s:
    return [FieldError(field, f"{label} is required.")]
  if len(s) < min_len:
    return [FieldError(field, f"{label} must be at least {min_len} characters long.")]
  if len(s) > max_len:
    return [FieldError(field, f"{label} length must be at most {max_len} characters.")]
  return []


def _name(value: str | None, field: str, label: str) -> list[FieldError]:
  errors = _text(value, field, label, min_len=NAME_MIN, max_len=NAME_MAX)
  if errors:
    return errors
  if _CONSECUTIVE_WS.search(value.strip()):
    return [FieldError(field, f"{label} cannot contain consecutive spaces.")]
  return []


def project_name(value: str | None, field: str = "name") -> list[FieldError]:
  errors = _name(value, field, "Project name")
  if not errors and any(unicodedata.category(c) == "Cc" for c in value.strip()):
    errors.append(FieldError(field, "Project name contains invalid characters."))
  if not errors and not slugify(value):
    errors.append(FieldError(field, "Project name must contain letters or digits."))
  return errors


def lane_name(value: str | None, field: str = "name") -> list[FieldError]:
  return _name(value, field, "Lane name")


def column_name(value: str | None, field: str = "name") -> list[FieldError]:
  return _name(value, field, "Column name")


def task_title(value: str | None, field: str = "title") -> list[FieldError]:
  return _name(value, field, "Task title")


def user_name(value: str | None, field: str = "name") -> list[FieldError]:
  errors = _name(value, field, "User name")
  if not errors and not _USER_NAME_RE.match(value.strip()):
    errors.append(FieldError(field, "User name must contain only letters."))
  return errors


def email(value: str | None, field: str = "email") -> list[FieldError]:
  s = (value or "").strip()
  if not s:
    return [FieldError(field, "Email is required.")]
  if len(s) > EMAIL_MAX:
    return [FieldError(field, f"Email length must be at most {EMAIL_MAX} characters.")]
  if not _EMAIL_RE.match(s):
    return [FieldError(field, "Invalid email format.")]
  return []


def password(value: str | None, field: str = "password") -> list[FieldError]:
  s = value or ""
  if not s:
    return [FieldError(field, "Password is required.")]
  errors: list[FieldError] = []
  if len(s) < PASSWORD_MIN:
    errors.append(FieldError(field, f"Password must have at least {PASSWORD_MIN} characters."))
  if len(s) > PASSWORD_MAX:
    errors.append(FieldError(field, f"Password length must be at most {PASSWORD_MAX} characters."))
  if not re.search(r"[A-Z]", s):
    errors.append(FieldError(field, "Password must contain at least one uppercase letter."))
  if not re.search(r"[0-9]", s):
    errors.append(FieldError(field, "Password must contain at least one number."))
  if not re.search(r"[^A-Za-z0-9]", s):
    errors.append(FieldError(field, "Password must contain at least one special character."))
  return errors


def task_description(value: str | None, field: str = "description") -> list[FieldError]:
  return _text(value, field, "Task description", min_len=NAME_MIN, max_len=DESCRIPTION_MAX)


def note_content(value: str | None, field: str = "content") -> list[FieldError]:
  return _text(value, field, "Note content", min_len=NAME_MIN, max_len=NOTE_MAX)


def non_negative(value: float | int | None, field: str) -> list[FieldError]:
  if value is None:
    return []
  if value < 0:
    return [FieldError(field, f"{field} must be >= 0.")]
  return []


def due_date(value: datetime | None, field: str = "dueDate", *, now: datetime | None = None) -> list[FieldError]:
  if value is None:
    return []
  if value.tzinfo is None or value.utcoffset() != timedelta(0):
    return [FieldError(field, "Due date must be a UTC date/time.")]
  if value < (now or datetime.now(timezone.utc)):
    return [FieldError(field, "Due date cannot be in the past.")]
  return []


def enum_value(value: str | None, enum_cls: type[Enum], field: str) -> list[FieldError]:
  allowed = {m.value for m in enum_cls}
  if value not in allowed:
    return [FieldError(field, f"Invalid value; expected one of {', '.join(sorted(allowed))}.")]
  return []


def slugify(name: str) -> str:
  s = unicodedata.normalize("NFKD", (name or "").strip().lower())
  s = "".join(c for c in s if not unicodedata.combining(c))
  return _SLUG_INVALID.sub("-", s).strip("-")[:NAME_MAX].strip("-")
