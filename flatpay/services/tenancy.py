# flatpay/services/tenancy.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, TypeVar

from sqlalchemy import Delete, Select, Update, delete, select, update
from sqlalchemy.orm import Session

from ..errors import ForbiddenError, NotFoundError
from ..models import Society

M = TypeVar("M")


def _label(model: type) -> str:
    return getattr(model, "__tablename__", model.__name__).rstrip("s").replace("_", " ")


@dataclass(frozen=True)
class SocietyScope:
    """
    The caller's tenant context. Every service reads and writes through it.

    Models passed here must carry a society_id column; the scope adds the
    filter so call sites never spell it out.
    """

    db: Session
    society_id: int
    profile_id: Optional[str] = None

    # -- reads -------------------------------------------------------------
    def select(self, model: type[M], *criteria: Any) -> Select:
        return select(model).where(model.society_id == self.society_id, *criteria)

    def all(self, model: type[M], *criteria: Any, order_by: Any = None) -> list[M]:
        q = self.select(model, *criteria)
        if order_by is not None:
            q = q.order_by(order_by)
        return list(self.db.scalars(q).all())

    def first(self, model: type[M], *criteria: Any) -> Optional[M]:
        return self.db.scalar(self.select(model, *criteria).limit(1))

    def must_get(self, model: type[M], row_id: int, *, label: Optional[str] = None) -> M:
        """
        Row by id inside this society.

        Missing -> NotFoundError. Present but owned by another society ->
        ForbiddenError, raised before any of the row's data leaves here.
        """
        row = self.db.get(model, row_id)
        name = label or _label(model)
        if row is None:
            raise NotFoundError(f"{name} not found")
        if int(row.society_id) != int(self.society_id):
            raise ForbiddenError(f"{name} belongs to another society")
        return row

    def society(self) -> Society:
        row = self.db.get(Society, self.society_id)
        if row is None:
            raise NotFoundError("society not found")
        return row

    # -- writes ------------------------------------------------------------
    def add(self, row: M) -> M:
        row.society_id = self.society_id
        self.db.add(row)
        return row

    def update(self, model: type[M], *criteria: Any) -> Update:
        return update(model).where(model.society_id == self.society_id, *criteria)

    def delete(self, model: type[M], *criteria: Any) -> Delete:
        return delete(model).where(model.society_id == self.society_id, *criteria)

    def execute(self, stmt: Any) -> int:
        """
        Run a scoped bulk UPDATE/DELETE and return the affected row count.

        Pending ORM changes are flushed first and loaded rows are expired after,
        so later attribute reads see what the statement wrote. Deleted rows
        leave the identity map.
        """
        self.db.flush()
        sync = "fetch" if isinstance(stmt, Delete) else False
        n = int(self.db.execute(stmt, execution_options={"synchronize_session": sync}).rowcount or 0)
        self.db.expire_all()
        return n
