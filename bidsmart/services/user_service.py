"""User service: materialises Supabase users on first sight."""

from sqlalchemy.ext.asyncio import AsyncSession

from bidsmart.database.models import User
from bidsmart.repositories.user_repository import UserRepository
from bidsmart.schemas.auth import CurrentUser
from bidsmart.utils.logging import get_logger

LOGGER = get_logger(__name__)


class UserService:
    """Service for user business logic operations."""

    def __init__(self, db_session: AsyncSession):
        """Initialize service with database session.

        Args:
            db_session: SQLAlchemy async session
        """
        self.session = db_session
        self.repository = UserRepository(db_session)

    async def get_or_create_user_from_jwt(self, current_user: CurrentUser) -> User:
        """Return the local user for a verified JWT, creating it if needed.

        Args:
            current_user: Caller decoded from the access token

        Returns:
            The persisted User
        """
        user = await self.repository.get_by_supabase_id(current_user.id)
        if user:
            if user.email != current_user.email:
                user.email = current_user.email
                await self.session.commit()
            return user

        user = await self.repository.create(
            supabase_user_id=current_user.id,
            email=current_user.email,
            full_name=current_user.full_name,
        )
        await self.session.commit()
        LOGGER.info("Created user from JWT", extra={"supabase_user_id": current_user.id})
        return user
