"""Generic async CRUD over soft-deletable models.

Workflow and execution services inherit from BaseService; every query
skips soft-deleted rows unless asked not to.
"""

from typing import Any, Generic, Optional, Sequence, Type, TypeVar
from uuid import uuid4

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.base import BaseModel

ModelType = TypeVar("ModelType", bound=BaseModel)


class BaseService(Generic[ModelType]):
    """CRUD for one model bound to one session.

    Services flush but never commit; the caller (request dependency or
    engine callback) owns the transaction.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    def _select(self, include_deleted: bool = False) -> Select:
        query = select(self.model)
        if not include_deleted:
            query = query.where(self.model.is_deleted == False)
        return query

    # ─── Read ──────────────────────────────────────────────

    async def get_by_id(self, id: str, include_deleted: bool = False) -> Optional[ModelType]:
        result = await self.db.execute(self._select(include_deleted).where(self.model.id == id))
        return result.scalar_one_or_none()

    async def list(
        self,
        offset: int = 0,
        limit: int = 50,
        order_by: str = "created_at",
        order_desc: bool = True,
        filters: Optional[dict[str, Any]] = None,
    ) -> tuple[Sequence[ModelType], int]:
        """Page of rows plus the total matching count.

        ``filters`` maps column names to a value, or to a list of values
        matched with IN. Unknown column names are ignored.
        """
        query = self._select()
        for name, value in (filters or {}).items():
            column = getattr(self.model, name, None)
            if column is None:
                continue
            query = query.where(column.in_(value) if isinstance(value, list) else column == value)

        count_query = select(func.count()).select_from(query.subquery())
        total = (await self.db.execute(count_query)).scalar() or 0

        column = getattr(self.model, order_by, self.model.created_at)
        query = query.order_by(column.desc() if order_desc else column.asc())
        result = await self.db.execute(query.offset(offset).limit(limit))
        return result.scalars().all(), total

    # ─── Write ─────────────────────────────────────────────

    async def create(self, data: dict[str, Any]) -> ModelType:
        data.setdefault("id", str(uuid4()))
        instance = self.model(**data)
        self.db.add(instance)
        await self.db.flush()
        await self.db.refresh(instance)
        return instance

    async def update(self, id: str, data: dict[str, Any]) -> Optional[ModelType]:
        """Apply the non-None values in data. Returns None when the row is missing."""
        instance = await self.get_by_id(id)
        if instance is None:
            return None

        changed = False
        for key, value in data.items():
            if value is not None and hasattr(instance, key):
                setattr(instance, key, value)
                changed = True

        if changed:
            await self.db.flush()
            await self.db.refresh(instance)
        return instance

    async def soft_delete(self, id: str) -> bool:
        instance = await self.get_by_id(id)
        if instance is None:
            return False
        instance.soft_delete()
        await self.db.flush()
        return True
