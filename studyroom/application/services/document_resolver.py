"""
Document reference resolution.

Viewers reach a document either directly or through a member's study
room item. Every read path resolves through resolve_document so the
lookup rules live in one place.

Dependencies: sqlalchemy, studyroom.boundary.db.CRUD
System role: Canonical DocumentRef -> DocumentModel lookup
"""

from dataclasses import dataclass
from typing import Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from studyroom.boundary.db.CRUD.document_crud import document_crud, study_room_item_crud
from studyroom.boundary.db.models.document_model import DocumentModel
from studyroom.core.exceptions import DocumentNotFoundError


@dataclass(frozen=True)
class ByDocumentId:
    """Reference a document by its own id."""

    document_id: UUID


@dataclass(frozen=True)
class ByStudyRoomItemId:
    """Reference a document through a study room item."""

    item_id: UUID


DocumentRef = Union[ByDocumentId, ByStudyRoomItemId]


async def resolve_document(session: AsyncSession, ref: DocumentRef | UUID) -> DocumentModel:
    """
    Load the Document a reference points at.

    A bare UUID is treated as ByDocumentId.

    Args:
        session: Async database session
        ref: Document or study room item reference

    Returns:
        DocumentModel: The referenced document

    Raises:
        DocumentNotFoundError: No such document (or item)
        TypeError: ref is not a DocumentRef
    """
    if isinstance(ref, UUID):
        ref = ByDocumentId(ref)

    if isinstance(ref, ByDocumentId):
        document = await document_crud.get_by_id(session, ref.document_id)
        if document is None:
            raise DocumentNotFoundError(str(ref.document_id))
        return document

    if isinstance(ref, ByStudyRoomItemId):
        document = await study_room_item_crud.get_document_for_item(session, ref.item_id)
        if document is None:
            raise DocumentNotFoundError(
                str(ref.item_id),
                {"study_room_item_id": str(ref.item_id)},
            )
        return document

    raise TypeError(f"Unsupported document reference: {ref!r}")
