# app/api/routes/common/health_router.py

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.api_response import response_success
from app.infra.db.session import get_session

router = APIRouter()


@router.get("/health", summary="存活探针")
async def health(session: AsyncSession = Depends(get_session)):
    await session.execute(text("SELECT 1"))
    return response_success(data={"status": "ok", "database": "ok"})
