from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from collabtask.concurrency.pipeline import bounded
from collabtask.config import settings
from collabtask.persistence import SqlVersionGateway, renumber, storage_errors

ModelT = TypeVar("ModelT")


def write_timeout() -> float:
  return float(settings.storage_timeout_seconds)


def gateway(db: AsyncSession, model: type[ModelT], entity: str | None = None) -> SqlVersionGateway[ModelT]:
  return SqlVersionGateway(db, model, entity=entity)


async def load(db: AsyncSession, model: type[ModelT], record_id: Any) -> ModelT | None:
  return await bounded(gateway(db, model).load_by_id(record_id), write_timeout())


async def commit(db: AsyncSession) -> None:
  with storage_errors("session", "commit"):
    await bounded(db.commit(), write_timeout())


def clamp(position: int, count: int) -> int:
  if count <= 0:
    return 0
  return max(0, min(int(position), count - 1))


async def sibling_count(db: AsyncSession, model: type[Any], scope_column: Any, scope_value: str) -> int:
  with storage_errors(model.__name__, "count"):
    res = await bounded(
      db.execute(select(func.count()).select_from(model).where(scope_column == scope_value)),
      write_timeout(),
    )
    return int(res.scalar_one() or 0)


async def place(db: AsyncSession, model: type[Any], scope_column: Any, scope_value: str, record: Any, index: int) -> None:
  """Put `record` at `index` among its siblings and renumber the scope to 0..n-1."""
  with storage_errors(model.__name__, "siblings"):
    res = await bounded(
      db.execute(
        select(model)
        .where(scope_column == scope_value, model.id != record.id)
        .order_by(model.position.asc(), model.created_at.asc())
        .execution_options(populate_existing=True)
      ),
      write_timeout(),
    )
    siblings: list[Any] = list(res.scalars().all())
  index = max(0, min(index, len(siblings)))
  ordered: Sequence[Any] = siblings[:index] + [record] + siblings[index:]
  await bounded(renumber(db, model, ordered), write_timeout())
