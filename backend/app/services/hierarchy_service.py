"""
OrgTrack Backend — Hierarchy Service
=====================================

What:  Create/list/get for Organization, Team, Project and Task.
How:   One EntityService instance per collection, each bound to its ORM model,
       the name of its parent-reference column and its user-facing label.
Who:   Called by the route handlers in app/routes/entities.py.

Error Handling Strategy:
    Every persistence failure is logged with its original exception and
    re-raised as DatabaseError carrying only the generic, entity-specific
    message ("Failed to create team"). Handlers never see driver errors, and
    one failing create has no effect on any other request.

Creates are not deduplicated: two identical POSTs yield two records.
"""

import logging
import uuid
from typing import Any, Generic, List, Optional, Type, TypeVar

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, NotFoundError
from app.models.hierarchy import Organization, Project, Task, Team

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


class EntityService(Generic[ModelT]):
    """
    Persistence operations for one entity collection.

    Attributes:
        model:        ORM class
        label:        Singular lower-case name used in messages ("team")
        plural:       Plural used in list failure messages ("teams")
        parent_field: Column holding the parent reference (None for the root)
    """

    def __init__(
        self,
        model: Type[ModelT],
        label: str,
        plural: str,
        parent_field: Optional[str] = None,
    ):
        self.model = model
        self.label = label
        self.plural = plural
        self.parent_field = parent_field

    async def create(self, db: AsyncSession, **fields: Any) -> ModelT:
        """
        Insert one record and commit it.

        The commit happens here (not in the request dependency) so a failed
        write is reported to the client as a 500 instead of being lost after
        the response is sent.

        Raises:
            DatabaseError: Insert or commit failed (→ 500 with generic message)
        """
        record = self.model(**fields)
        try:
            db.add(record)
            await db.commit()
        except Exception as e:
            logger.error(
                "Failed to create %s: %s", self.label, str(e), exc_info=True
            )
            try:
                await db.rollback()
            except Exception:
                logger.error("Rollback after failed %s create also failed", self.label)
            raise DatabaseError(
                message=f"Failed to create {self.label}",
                context={"error_type": type(e).__name__},
            )

        logger.info("Created %s %s", self.label, record.id)
        return record

    async def get(self, db: AsyncSession, record_id: uuid.UUID) -> ModelT:
        """
        Raises:
            NotFoundError: No record with this id (→ 404)
            DatabaseError: Query failed (→ 500)
        """
        try:
            result = await db.execute(select(self.model).where(self.model.id == record_id))
            record = result.scalar_one_or_none()
        except Exception as e:
            logger.error("Database error fetching %s %s: %s", self.label, record_id, str(e))
            raise DatabaseError(
                message=f"Failed to fetch {self.label}",
                context={"record_id": str(record_id), "error_type": type(e).__name__},
            )

        if record is None:
            raise NotFoundError(resource=self.label, resource_id=str(record_id))
        return record

    async def list(
        self,
        db: AsyncSession,
        limit: int = 20,
        parent_id: Optional[uuid.UUID] = None,
    ) -> List[ModelT]:
        """Newest first; optionally only the children of one parent."""
        query = select(self.model)
        if parent_id is not None and self.parent_field:
            query = query.where(getattr(self.model, self.parent_field) == parent_id)
        query = query.order_by(desc(self.model.created_at)).limit(limit)

        try:
            result = await db.execute(query)
            return list(result.scalars().all())
        except Exception as e:
            logger.error("Database error listing %s: %s", self.plural, str(e), exc_info=True)
            raise DatabaseError(
                message=f"Failed to fetch {self.plural}",
                context={"error_type": type(e).__name__},
            )


organization_service: EntityService[Organization] = EntityService(
    Organization, label="organization", plural="organizations"
)
team_service: EntityService[Team] = EntityService(
    Team, label="team", plural="teams", parent_field="organization_id"
)
project_service: EntityService[Project] = EntityService(
    Project, label="project", plural="projects", parent_field="team_id"
)
task_service: EntityService[Task] = EntityService(
    Task, label="task", plural="tasks", parent_field="project_id"
)
