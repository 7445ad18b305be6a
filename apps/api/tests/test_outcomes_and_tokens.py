from __future__ import annotations

import base64

import pytest

from collabtask.concurrency.outcomes import MutationKind, MutationOutcome, WriteResult, classify
from collabtask.concurrency.tokens import (
  TOKEN_BYTES,
  WILDCARD,
  decode_token,
  encode_token,
  etag_for,
  matches,
  new_version_token,
  parse_if_match,
  require_precondition,
)
from collabtask.errors import PreconditionMissing, ValidationFailed


@pytest.mark.parametrize(
  ("kind", "present", "match", "noop", "expected"),
  [
    (MutationKind.CREATE, True, True, False, MutationOutcome.CREATED),
    (MutationKind.CREATE, False, True, False, MutationOutcome.NOT_FOUND),
    (MutationKind.UPDATE, False, False, False, MutationOutcome.NOT_FOUND),
    (MutationKind.UPDATE, True, False, False, MutationOutcome.CONFLICT),
    (MutationKind.UPDATE, True, False, True, MutationOutcome.CONFLICT),
    (MutationKind.UPDATE, True, True, True, MutationOutcome.NO_OP),
    (MutationKind.UPDATE, True, True, False, MutationOutcome.UPDATED),
    (MutationKind.DELETE, False, False, False, MutationOutcome.NO_OP),
    (MutationKind.DELETE, True, False, False, MutationOutcome.CONFLICT),
    (MutationKind.DELETE, True, True, False, MutationOutcome.DELETED),
  ],
)
def test_classify_decision_table(kind, present, match, noop, expected) -> None:
  assert classify(kind, record_present=present, version_matches=match, change_is_noop=noop) is expected


def test_only_successful_results_carry_a_new_version() -> None:
  assert WriteResult(MutationOutcome.UPDATED, version=b"x" * 8).succeeded
  with pytest.raises(ValueError):
    WriteResult(MutationOutcome.CONFLICT, version=b"x" * 8)
  conflict = WriteResult(MutationOutcome.CONFLICT, current_version=b"y" * 8)
  assert conflict.version is None and not conflict.succeeded


def test_mutation_kind_from_http_method() -> None:
  assert MutationKind.from_http_method("post") is MutationKind.CREATE
  assert MutationKind.from_http_method("PATCH") is MutationKind.UPDATE
  assert MutationKind.from_http_method("PUT") is MutationKind.UPDATE
  assert MutationKind.from_http_method("DELETE") is MutationKind.DELETE
  with pytest.raises(ValueError):
    MutationKind.from_http_method("GET")


def test_new_tokens_are_fresh() -> None:
  prev = new_version_token()
  assert len(prev) == TOKEN_BYTES
  assert new_version_token(prev) != prev


def test_matches_is_exact_and_never_matches_empty() -> None:
  t = b"\x01\x02\x03\x04\x05\x06\x07\x08"
  assert matches(t, bytes(t))
  assert not matches(t, b"\x01\x02\x03\x04\x05\x06\x07\x09")
  assert not matches(t, None)
  assert not matches(None, None)
  assert not matches(b"", b"")


def test_precondition_is_required_for_update_and_delete_only() -> None:
  require_precondition(MutationKind.CREATE, None)
  require_precondition(MutationKind.UPDATE, WILDCARD)
  with pytest.raises(PreconditionMissing):
    require_precondition(MutationKind.UPDATE, None)
  with pytest.raises(PreconditionMissing):
    require_precondition(MutationKind.DELETE, b"")


def test_token_text_forms() -> None:
  t = b"\x00\xffrowver"
  encoded = encode_token(t)
  assert encoded == base64.b64encode(t).decode()
  assert decode_token(encoded) == t
  assert decode_token("   ") is None
  assert etag_for(t) == f'W/"{encoded}"'
  assert etag_for(None) is None


def test_decode_token_rejects_garbage() -> None:
  with pytest.raises(ValidationFailed) as exc:
    decode_token("not base64!!")
  assert exc.value.errors[0].field == "rowVersion"


def test_parse_if_match_forms() -> None:
  t = b"abcdefgh"
  encoded = encode_token(t)
  assert parse_if_match(None) is None
  assert parse_if_match("  ") is None
  assert parse_if_match("*") is WILDCARD
  assert parse_if_match(f'W/"{encoded}"') == t
  assert parse_if_match(f'"{encoded}"') == t
  assert parse_if_match(encoded) == t


@pytest.mark.parametrize("header", ['W/"a", W/"b"', 'W/""', '"%%%"'])
def test_parse_if_match_rejects_unsupported_headers(header: str) -> None:
  with pytest.raises(ValidationFailed) as exc:
    parse_if_match(header)
  assert exc.value.errors[0].field == "If-Match"
