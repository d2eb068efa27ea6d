"""
Document and study room item CRUD operations.

Read-side lookups used by the document resolver. Documents are created by
the upload subsystem; create() exists for seeding and tests.

Dependencies: sqlalchemy, studyroom.boundary.db.models
System role: Source document lookups
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studyroom.boundary.db.CRUD.base_crud import BaseCRUD
from studyroom.boundary.db.models.document_model import DocumentModel
from studyroom.boundary.db.models.study_room_item_model import StudyRoomItemModel


class DocumentCRUD(BaseCRUD[DocumentModel]):
    """CRUD operations for DocumentModel."""

    def __init__(self) -> None:
        """Initialize DocumentCRUD with DocumentModel."""
        super().__init__(DocumentModel)


class StudyRoomItemCRUD(BaseCRUD[StudyRoomItemModel]):
    """CRUD operations for StudyRoomItemModel."""

    def __init__(self) -> None:
        """Initialize StudyRoomItemCRUD with StudyRoomItemModel."""
        super().__init__(StudyRoomItemModel)

    async def get_document_for_item(
        self,
        session: AsyncSession,
        item_id: UUID,
    ) -> DocumentModel | None:
        """
        Retrieve the document a study room item points at.

        Args:
            session: Async database session
            item_id: Study room item UUID

        Returns:
            DocumentModel if both item and document exist, None otherwise
        """
        stmt = (
            select(DocumentModel)
            .join(StudyRoomItemModel, StudyRoomItemModel.document_id == DocumentModel.id)
            .where(StudyRoomItemModel.id == item_id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()


document_crud = DocumentCRUD()
study_room_item_crud = StudyRoomItemCRUD()
