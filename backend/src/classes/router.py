"""Classes API endpoints."""

import logging

from fastapi import APIRouter

from src.auth import CurrentAuth
from src.classes.repository import SqlAlchemyClassRepository
from src.classes.schemas import ClassResponse
from src.exceptions import ResourceNotFoundError


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/classes", tags=["classes"])


@router.get("")
async def list_classes(auth: CurrentAuth) -> list[ClassResponse]:
    """List all classes in unlock order with videos, assessments and resources."""
    classes = await SqlAlchemyClassRepository(auth.session).list_ordered()
    return [ClassResponse.model_validate(class_) for class_ in classes]


@router.get("/{class_id}")
async def get_class(class_id: int, auth: CurrentAuth) -> ClassResponse:
    """Get a single class by ID."""
    class_ = await SqlAlchemyClassRepository(auth.session).get(class_id)
    if class_ is None:
        raise ResourceNotFoundError("Class", class_id)
    return ClassResponse.model_validate(class_)
