"""
UserRepository for database operations on User model
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, or_
from database_models import User
from models.plans import Tier, SubscriptionStatus


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve a user by email address.

        Args:
            email: User's email address (case-insensitive search)

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            user_id: User's ID

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.id == str(user_id))
        )
        return result.scalar_one_or_none()

    async def email_or_username_taken(self, email: str, username: Optional[str]) -> bool:
        conditions = [User.email == email.lower()]
        if username:
            conditions.append(User.username == username)
        result = await self.db.execute(select(User.id).where(or_(*conditions)).limit(1))
        return result.first() is not None

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user in the database.

        Args:
            user_data: Dictionary containing user data. Must include:
                - email: str
                - password_hash: str
                Optional:
                - username, first_name, last_name: str
                - subscription_tier: str (defaults to "free")
                - subscription_status: str (defaults to "active")

        Returns:
            Created User object
        """
        user = User(
            email=user_data["email"].lower(),
            password_hash=user_data["password_hash"],
            username=user_data.get("username"),
            first_name=user_data.get("first_name"),
            last_name=user_data.get("last_name"),
            subscription_tier=user_data.get("subscription_tier", Tier.FREE.value),
            subscription_status=user_data.get("subscription_status", SubscriptionStatus.ACTIVE.value),
            subscription_expires_at=user_data.get("subscription_expires_at"),
        )
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(user)
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Update user fields.

        Args:
            user: User object to update
            updates: Dictionary of fields to update (e.g., {"stripe_customer_id": "cus_123"})

        Returns:
            Updated User object
        """
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def touch_last_login(self, user_id: str) -> None:
        """Stamp last_login_at. Committed right away so a later rejection in the request keeps it."""
        await self.db.execute(
            update(User).where(User.id == str(user_id)).values(last_login_at=datetime.now())
        )
        await self.db.commit()

    async def get_subscription(self, user_id: str):
        """
        Read the subscription columns straight from the store (bypasses the identity map).

        Returns:
            Row with subscription_tier, subscription_status, subscription_expires_at, or None
        """
        result = await self.db.execute(
            select(
                User.subscription_tier,
                User.subscription_status,
                User.subscription_expires_at,
            ).where(User.id == str(user_id))
        )
        return result.first()

    async def downgrade_expired_subscription(self, user_id: str) -> None:
        """Move the user to free/expired in a single statement, committed immediately."""
        await self.db.execute(
            update(User)
            .where(User.id == str(user_id))
            .values(
                subscription_tier=Tier.FREE.value,
                subscription_status=SubscriptionStatus.EXPIRED.value,
            )
        )
        await self.db.commit()

    async def update_subscription(self, values: dict, *, user_id: Optional[str] = None,
                                  stripe_customer_id: Optional[str] = None) -> int:
        """
        Apply subscription changes keyed by user id or Stripe customer id.

        Returns:
            Number of rows updated
        """
        statement = update(User).values(**values)
        if user_id is not None:
            statement = statement.where(User.id == str(user_id))
        elif stripe_customer_id is not None:
            statement = statement.where(User.stripe_customer_id == stripe_customer_id)
        else:
            raise ValueError("user_id or stripe_customer_id is required")

        result = await self.db.execute(statement)
        await self.db.commit()
        return result.rowcount
