from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..jobs import get_job
from ..schemas import GenerationJobRead
from ..utils import require_authenticated_user

router = APIRouter(prefix="/api/jobs", tags=["jobs"])


@router.get("/{job_id}")
async def read_job(
    job_id: str,
    user=Depends(require_authenticated_user),
    db: AsyncSession = Depends(get_db),
):
    user_id = user.id
    job = await get_job(db, job_id.strip(), user_id=user_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return {"success": True, "job": GenerationJobRead.model_validate(job).dump()}
