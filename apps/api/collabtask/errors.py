from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
  field: str
  message: str

  def as_dict(self) -> dict[str, str]:
    return {"field": self.field, "message": self.message}


class ValidationFailed(ValueError):
  """Caller input is malformed; raised before any storage access."""

  def __init__(self, errors: list[FieldError]) -> None:
    self.errors = list(errors)
    super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors) or "Validation failed")

  @classmethod
  def single(cls, field: str, message: str) -> ValidationFailed:
    return cls([FieldError(field=field, message=message)])


class PreconditionMissing(ValueError):
  """Update or delete attempted without a version token."""

  def __init__(self, message: str = "A version token (If-Match or rowVersion) is required.") -> None:
    self.message = message
    super().__init__(message)


class StorageUnavailable(RuntimeError):
  pass


class UnmappedOutcomeError(RuntimeError):
  pass
