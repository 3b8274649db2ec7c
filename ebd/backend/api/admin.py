import logging

import asyncpg
from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..db.db_client import AsyncPostgresClient
from ..models.entities import UserSession
from .auth import get_admin_session
from .dependencies import get_db_client
from .schemas.users import BackfillResponse
from .utilities.limiter import limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Maintenance"])


@router.post("/maintenance/backfill-class-links", response_model=BackfillResponse, summary="Link classes to teachers and categories by id")
@limiter.limit("2/minute")
async def backfill_class_links(request: Request, admin: UserSession = Depends(get_admin_session), db_client: AsyncPostgresClient = Depends(get_db_client)):
    logger.info(f"Class link back-fill requested by '{admin.email}'.")
    try:
        result = await db_client.backfill_class_links()
    except (asyncpg.PostgresError, OSError) as e:
        logger.error(f"Class link back-fill failed: {e}", exc_info=True)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="The back-fill failed; nothing was changed.")
    return BackfillResponse(**result)
