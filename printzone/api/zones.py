# printzone/api/zones.py
from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from pydantic import BaseModel

from printzone.db.models.user import User
from printzone.services.auth_service import require_operator
from printzone.services.zone_persistence import ZonePersistenceService, get_zone_service

router = APIRouter(tags=["zones"])


class AssignmentPatch(BaseModel):
    """Частичная правка размещения. Геометрия в единицах страницы page_id (по умолчанию своей)."""
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    z_index: int | None = None
    is_repeating: bool | None = None


@router.patch("/assignments/{assignment_id}")
async def update_assignment(
    assignment_id: int,
    payload: AssignmentPatch,
    page_id: int | None = None,
    user: User = Depends(require_operator),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    fields = payload.model_dump(exclude_none=True)
    if not fields:
        raise HTTPException(status_code=400, detail="Nothing to update")
    if not await zone_service.update_assignment(assignment_id, fields, page_id=page_id):
        raise HTTPException(status_code=404, detail="Assignment not found")
    return {"id": assignment_id, "updated": sorted(fields)}


@router.delete("/zones/{zone_id}", status_code=204)
async def delete_zone(
    zone_id: int,
    assignment_id: int | None = None,
    user: User = Depends(require_operator),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    if not await zone_service.delete_zone(zone_id, assignment_id):
        raise HTTPException(status_code=404, detail="Zone not found")
    return Response(status_code=204)
