"""
SQLAlchemy implementation of the version gateway.

The version check happens inside the storage statement (`... WHERE pk AND row_version =
:expected`), so two writers that both loaded the same version cannot both win. A
uniqueness or foreign-key violation is reported as a lost race; it rolls back the
surrounding transaction, so callers must not touch ORM state after a `None` return.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from sqlalchemy import delete, inspect as sa_inspect, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.concurrency.outcomes import MutationKind
from collabtask.concurrency.tokens import new_version_token
from collabtask.errors import StorageUnavailable
from collabtask.logging_config import get_logger

ModelT = TypeVar("ModelT")

logger = get_logger(__name__)


@contextmanager
def storage_errors(entity: str, op: str) -> Iterator[None]:
  try:
    yield
  except (OperationalError, InterfaceError) as exc:
    logger.error("storage_unavailable", entity=entity, op=op, error=type(exc).__name__)
    raise StorageUnavailable(f"{entity} storage is unavailable") from exc


class SqlVersionGateway(Generic[ModelT]):
  def __init__(self, session: AsyncSession, model: type[ModelT], *, entity: str | None = None) -> None:
    self.session = session
    self.model = model
    self.entity = entity or model.__name__
    mapper = sa_inspect(model)
    self._pk_attrs = [mapper.get_property_by_column(c).key for c in mapper.primary_key]

  def _key_values(self, record_id: Any) -> tuple[Any, ...]:
    if len(self._pk_attrs) == 1:
      return (record_id,)
    values = tuple(record_id)
    if len(values) != len(self._pk_attrs):
      raise ValueError(f"{self.entity} key needs {len(self._pk_attrs)} parts, got {len(values)}")
    return values

  def _key_clause(self, record_id: Any) -> list[Any]:
    return [getattr(self.model, attr) == value for attr, value in zip(self._pk_attrs, self._key_values(record_id))]

  def id_of(self, record: ModelT) -> Any:
    values = tuple(getattr(record, attr) for attr in self._pk_attrs)
    return values[0] if len(values) == 1 else values

  def version_of(self, record: ModelT) -> bytes | None:
    return getattr(record, "row_version", None)

  async def load_by_id(self, record_id: Any) -> ModelT | None:
    with storage_errors(self.entity, "load"):
      return await self.session.get(self.model, self._key_values(record_id), populate_existing=True)

  async def current_version(self, record_id: Any) -> bytes | None:
    with storage_errors(self.entity, "current_version"):
      res = await self.session.execute(select(self.model.row_version).where(*self._key_clause(record_id)))
      return res.scalar_one_or_none()

  async def conditional_save(
    self,
    record: ModelT,
    expected_version: bytes | None,
    kind: MutationKind,
    changes: Mapping[str, Any] | None = None,
  ) -> bytes | None:
    with storage_errors(self.entity, kind.value):
      try:
        if kind is MutationKind.CREATE:
          return await self._insert(record)
        if kind is MutationKind.UPDATE:
          return await self._update(record, expected_version, changes or {})
        return await self._delete(record, expected_version)
      except IntegrityError as exc:
        logger.info("conditional_save_rejected", entity=self.entity, kind=kind.value, reason=type(exc.orig).__name__)
        await self.session.rollback()
        return None

  async def _insert(self, record: ModelT) -> bytes:
    token = new_version_token()
    record.row_version = token
    self.session.add(record)
    await self.session.flush()
    return token

  async def _update(self, record: ModelT, expected: bytes | None, changes: Mapping[str, Any]) -> bytes | None:
    token = new_version_token(expected)
    stmt = (
      update(self.model)
      .where(*self._key_clause(self.id_of(record)), self.model.row_version == expected)
      .values(**dict(changes), row_version=token)
      .execution_options(synchronize_session=False)
    )
    res = await self.session.execute(stmt)
    if res.rowcount != 1:
      logger.info("conditional_save_lost_race", entity=self.entity, kind="update")
      return None
    await self.session.refresh(record)
    return token

  async def _delete(self, record: ModelT, expected: bytes | None) -> bytes | None:
    stmt = (
      delete(self.model)
      .where(*self._key_clause(self.id_of(record)), self.model.row_version == expected)
      .execution_options(synchronize_session=False)
    )
    res = await self.session.execute(stmt)
    if res.rowcount != 1:
      logger.info("conditional_save_lost_race", entity=self.entity, kind="delete")
      return None
    self.session.expunge(record)
    return expected


async def renumber(session: AsyncSession, model: type[Any], ordered: Sequence[Any]) -> None:
  """Write contiguous positions 0..n-1 in the given order; rows already in place keep their version."""
  with storage_errors(model.__name__, "renumber"):
    for idx, row in enumerate(ordered):
      if row.position == idx:
        continue
      await session.execute(
        update(model)
        .where(model.id == row.id)
        .values(position=idx, row_version=new_version_token(row.row_version))
        .execution_options(synchronize_session=False)
      )
    for row in ordered:
      await session.refresh(row)
