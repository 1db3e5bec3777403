"""Read access to the curriculum: classes, their videos, assessments and resources."""

from collections.abc import Sequence

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.classes.models import Assessment, Class, ClassResource, ClassVideo


def _class_with_children() -> Select[tuple[Class]]:
    return select(Class).options(
        selectinload(Class.videos),
        selectinload(Class.resources),
        selectinload(Class.assessments).selectinload(Assessment.questions),
    ).execution_options(populate_existing=True)


class SqlAlchemyClassRepository:
    """ClassRepository backed by an AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_ordered(self) -> Sequence[Class]:
        """Return every class by ascending `order`, children eagerly loaded."""
        result = await self.session.execute(_class_with_children().order_by(Class.order))
        return result.scalars().all()

    async def get(self, class_id: int) -> Class | None:
        """Return one class with children, or None."""
        result = await self.session.execute(_class_with_children().where(Class.id == class_id))
        return result.scalar_one_or_none()

    async def get_video(self, video_id: int) -> ClassVideo | None:
        """Return a video by id, or None."""
        return await self.session.get(ClassVideo, video_id)

    async def get_resource(self, resource_id: int) -> ClassResource | None:
        """Return a resource by id, or None."""
        return await self.session.get(ClassResource, resource_id)

    async def get_assessment(self, assessment_id: int) -> Assessment | None:
        """Return an assessment with its questions, or None."""
        result = await self.session.execute(
            select(Assessment).options(selectinload(Assessment.questions)).where(Assessment.id == assessment_id)
        )
        return result.scalar_one_or_none()
