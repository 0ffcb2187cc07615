import logging
import time

from fastapi import APIRouter, Depends

from ..auth import decode_access_token, get_bearer_token, get_current_user
from ..models import User
from ..shared.responses import iso, success
from ..token_blacklist import blacklist_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/logout")
async def logout(
    token: str = Depends(get_bearer_token),
    current_user: User = Depends(get_current_user),
):
    """Invalidate the presented token for the rest of its lifetime"""
    claims = decode_access_token(token)
    expires_at = int(claims.get("exp") or time.time())
    blacklist_token(token, expires_at)
    logger.info(f"👋 User {current_user.id} logged out")
    return success("Logged out successfully")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return success(
        "User retrieved successfully",
        {
            "id": current_user.id,
            "full_name": current_user.full_name,
            "email": current_user.email,
            "phone_number": current_user.phone_number,
            "status": current_user.status,
            "created_at": iso(current_user.created_at),
            "stores": [
                {"store_id": m.store_id, "store_name": m.store.name, "role": m.role}
                for m in current_user.store_memberships
            ],
        },
    )
