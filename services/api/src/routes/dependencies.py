from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from models.operations.engine import AuctionEngine
from utils import log

logger = log.get_logger(__name__)

# Identity comes from the authenticating gateway in front of the API
USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


def get_engine(request: Request) -> AuctionEngine:
    return request.app.state.engine


async def current_user_id(x_user_id: Optional[str] = Header(default=None, alias=USER_ID_HEADER)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=f"Missing {USER_ID_HEADER} header")
    return x_user_id


async def require_admin(
    user_id: str = Depends(current_user_id),
    x_user_role: Optional[str] = Header(default=None, alias=USER_ROLE_HEADER),
) -> str:
    """
    Dependency to ensure the caller has the 'admin' role.
    """
    roles = [r.strip() for r in (x_user_role or "").split(",") if r.strip()]
    if "admin" not in roles:
        logger.warning(f"User {user_id} attempted admin access without 'admin' role. Roles: {roles}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )
    return user_id
