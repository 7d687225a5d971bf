# backend/directory/api.py
# Healthcare-center directory routes

from typing import Optional

from fastapi import APIRouter, HTTPException

from .centers import center_directory

router = APIRouter(prefix="/api", tags=["Directory"])


@router.get("/healthcare-centers")
async def list_centers(province: Optional[str] = None, type: Optional[str] = None, q: Optional[str] = None):
    centers = center_directory.find(province=province, center_type=type, query=q)
    return {
        "total": len(centers),
        "centers": centers,
        "provinces": center_directory.province_counts()
    }


@router.get("/healthcare-centers/{center_id}")
async def get_center(center_id: str):
    center = center_directory.get_by_id(center_id)
    if not center:
        raise HTTPException(status_code=404, detail=f"Healthcare center '{center_id}' not found")
    return center
