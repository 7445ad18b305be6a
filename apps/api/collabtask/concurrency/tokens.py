"""
Version tokens for optimistic concurrency.

A token is an opaque byte string stored in every mutable row (`row_version`). Tokens are
only ever compared for equality; a successful write always stores a fresh one.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import re
import secrets
from typing import Final

from collabtask.concurrency.outcomes import MutationKind
from collabtask.errors import PreconditionMissing, ValidationFailed

TOKEN_BYTES: Final = 8


class Wildcard:
  def __repr__(self) -> str:
    return "WILDCARD"


# `If-Match: *`: the caller accepts whatever version is currently stored.
WILDCARD: Final = Wildcard()

_ETAG_RE = re.compile(r'^\s*(?:[Ww]\s*/\s*)?"?([^"]*)"?\s*$')


def new_version_token(previous: bytes | None = None) -> bytes:
  token = secrets.token_bytes(TOKEN_BYTES)
  while previous is not None and token == previous:
    token = secrets.token_bytes(TOKEN_BYTES)
  return token


def matches(stored: bytes | None, supplied: bytes | None) -> bool:
  if not stored or not supplied:
    return False
  return hmac.compare_digest(bytes(stored), bytes(supplied))


def require_precondition(kind: MutationKind, supplied: bytes | None) -> None:
  if kind is MutationKind.CREATE:
    return
  if not supplied:
    raise PreconditionMissing()


def encode_token(token: bytes | None) -> str | None:
  if token is None:
    return None
  return base64.b64encode(bytes(token)).decode("ascii")


def decode_token(value: str | None, *, field: str = "rowVersion") -> bytes | None:
  s = (value or "").strip()
  if not s:
    return None
  try:
    raw = base64.b64decode(s.encode("ascii"), validate=True)
  except (binascii.Error, UnicodeEncodeError) as exc:
    raise ValidationFailed.single(field, "Version token must be base64.") from exc
  if not raw:
    raise ValidationFailed.single(field, "Version token cannot be empty.")
  return raw


def etag_for(token: bytes | None) -> str | None:
  encoded = encode_token(token)
  if not encoded:
    return None
  return f'W/"{encoded}"'


def parse_if_match(header_value: str | None) -> bytes | Wildcard | None:
  """
  Parse an If-Match header into a version token.

  Accepts a single weak or strong validator (quoted or bare base64) or `*`.
  Returns None when the header is absent or blank.
  """
  if header_value is None or not header_value.strip():
    return None
  if header_value.strip() == "*":
    return WILDCARD
  if "," in header_value:
    raise ValidationFailed.single("If-Match", "Only a single entity tag is supported.")
  m = _ETAG_RE.match(header_value)
  if not m or not m.group(1):
    raise ValidationFailed.single("If-Match", "Malformed entity tag.")
  return decode_token(m.group(1), field="If-Match")
