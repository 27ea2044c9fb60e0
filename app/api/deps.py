from typing import Annotated
from dataclasses import dataclass
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token
from app.models.user import User
from app.services.invoice_service import BusinessIdentity


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

DB = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DB,
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and returns the user object.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        logger.warning(f"Invalid user_id in token: {user_id}")
        raise credentials_exception

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if user is None:
        logger.warning(f"User {user_id} from token not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


@dataclass(frozen=True)
class BusinessContext:
    """
    Owner id and business identity captured once per request.

    Plain values, so they stay readable after the service rolls back
    the session on a retry.
    """
    user_id: uuid.UUID
    identity: BusinessIdentity


async def get_current_business(current_user: CurrentUser) -> BusinessContext:
    return BusinessContext(
        user_id=current_user.id,
        identity=BusinessIdentity.from_user(current_user),
    )


CurrentBusiness = Annotated[BusinessContext, Depends(get_current_business)]
