"""
Base repository class with common CRUD operations.

Provides a foundation for domain-specific repositories with:
- Type-safe generic operations
- Consistent commit/refresh handling
"""
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import DeclarativeBase

T = TypeVar("T", bound=DeclarativeBase)


class BaseRepository(Generic[T]):
    """
    Generic base repository for CRUD operations.

    Subclass this and set the `model` and `pk` class attributes.
    Override methods as needed for domain-specific behavior.
    """

    model: Type[T]
    pk: str = "id"

    def __init__(self, db: AsyncSession):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy async session
        """
        self.db = db

    def _pk_column(self):
        return getattr(self.model, self.pk)

    async def get_by_id(self, id: Any) -> Optional[T]:
        """
        Get a single record by primary key.

        Args:
            id: Primary key value

        Returns:
            Record if found, None otherwise
        """
        result = await self.db.execute(
            select(self.model).where(self._pk_column() == id)
        )
        return result.scalar_one_or_none()

    async def update(self, entity: T) -> T:
        """
        Update an existing record.

        Args:
            entity: Entity with updated values

        Returns:
            Updated entity
        """
        await self.db.commit()
        await self.db.refresh(entity)
        return entity

    async def delete(self, entity: T) -> bool:
        """
        Delete a record.

        Args:
            entity: Entity to delete

        Returns:
            True if deleted successfully
        """
        await self.db.delete(entity)
        await self.db.commit()
        return True

