from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ConflictError
from app.core.security import verify_password, get_password_hash, create_access_token
from app.models.user import User
from app.schemas.auth import RegisterRequest


class AuthService:
    """Registration and login for business owners."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def register(self, data: RegisterRequest) -> User:
        """
        Create a business owner account.

        Raises:
            ConflictError: email already registered
        """
        email = data.email.lower()
        existing = await self.db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none():
            raise ConflictError(f"Email {email} is already registered")

        user = User(
            email=email,
            password_hash=get_password_hash(data.password),
            full_name=data.full_name,
            business_name=data.business_name,
            business_address=data.business_address,
            business_gstin=data.business_gstin,
            business_contact=data.business_contact,
            bank_details=data.bank_details,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError(f"Email {email} is already registered")
        return user

    async def authenticate_user(self, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user by email and password.

        Returns:
            User object if authentication successful, None otherwise
        """
        result = await self.db.execute(select(User).where(User.email == email.lower()))
        user = result.scalar_one_or_none()

        if user is None or not user.is_active:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    async def create_token(self, user: User) -> Tuple[str, int]:
        """Access token and its lifetime in seconds. Records the login time."""
        access_token = create_access_token(subject=user.id, additional_claims={"email": user.email})
        expires_in = settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.commit()

        return access_token, expires_in
