from __future__ import annotations

from typing import Any

from fastapi import Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from collabtask.concurrency.outcomes import MutationOutcome, WriteResult
from collabtask.concurrency.tokens import encode_token, etag_for
from collabtask.errors import UnmappedOutcomeError


def _version_headers(token: bytes | None, location: str | None = None) -> dict[str, str]:
  headers: dict[str, str] = {}
  etag = etag_for(token)
  if etag:
    headers["ETag"] = etag
  if location:
    headers["Location"] = location
  return headers


def to_http(result: WriteResult, *, body: Any = None, location: str | None = None) -> Response:
  """
  Render a write result as an HTTP response.

  Created -> 201 (+ETag, +Location), Updated -> 204 (+ETag), Deleted -> 204,
  NoOp -> 200, NotFound -> 404, Conflict -> 409 with the current version if known.
  """
  outcome = result.outcome
  if outcome is MutationOutcome.CREATED:
    content = jsonable_encoder(body) if body is not None else {"status": "created"}
    return JSONResponse(
      status_code=status.HTTP_201_CREATED,
      content=content,
      headers=_version_headers(result.version, location),
    )
  if outcome is MutationOutcome.UPDATED:
    return Response(status_code=status.HTTP_204_NO_CONTENT, headers=_version_headers(result.version))
  if outcome is MutationOutcome.DELETED:
    return Response(status_code=status.HTTP_204_NO_CONTENT)
  if outcome is MutationOutcome.NO_OP:
    return JSONResponse(status_code=status.HTTP_200_OK, content={"status": "no-op"})
  if outcome is MutationOutcome.NOT_FOUND:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not-found"})
  if outcome is MutationOutcome.CONFLICT:
    return JSONResponse(
      status_code=status.HTTP_409_CONFLICT,
      content={"error": "conflict", "currentVersion": encode_token(result.current_version)},
    )
  raise UnmappedOutcomeError(f"No HTTP mapping for outcome {outcome!r}")
