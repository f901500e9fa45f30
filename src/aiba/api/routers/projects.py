from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, status

from ...domain.chat_models import ErrorResponse
from ...domain.project_models import ProjectRecord, ProjectUpsert
from ...infrastructure.chat_store import StoreError
from ...infrastructure.project_store import get_project_store


router = APIRouter(prefix="/projects", tags=["projects"])

_STORE_ERRORS = {503: {"model": ErrorResponse}}


def _unavailable(exc: StoreError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("", response_model=List[ProjectRecord], responses=_STORE_ERRORS)
def list_projects() -> List[ProjectRecord]:
    try:
        return get_project_store().list()
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.post("", response_model=ProjectRecord, status_code=status.HTTP_201_CREATED, responses=_STORE_ERRORS)
def create_project(payload: ProjectUpsert) -> ProjectRecord:
    try:
        return get_project_store().insert(payload)
    except StoreError as exc:
        raise _unavailable(exc) from exc


@router.get("/{project_id}", response_model=ProjectRecord, responses={404: {"model": ErrorResponse}, **_STORE_ERRORS})
def get_project(project_id: str) -> ProjectRecord:
    try:
        proj = get_project_store().get(project_id)
    except StoreError as exc:
        raise _unavailable(exc) from exc
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj


@router.put("/{project_id}", response_model=ProjectRecord, responses={404: {"model": ErrorResponse}, **_STORE_ERRORS})
def update_project(project_id: str, payload: ProjectUpsert) -> ProjectRecord:
    """Replace only the fields present in the payload."""
    try:
        proj = get_project_store().update(project_id, payload)
    except StoreError as exc:
        raise _unavailable(exc) from exc
    if not proj:
        raise HTTPException(status_code=404, detail="Project not found")
    return proj
