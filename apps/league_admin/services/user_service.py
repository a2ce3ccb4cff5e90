"""
User lookups for authentication.
"""

from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from league_admin.database.models import Player, User
from league_admin.utils.datetime_utils import to_iso


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[Dict]:
    """
    Get user by ID.

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User dictionary or None if not found
    """
    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    return _user_to_dict(user) if user else None


async def get_player_id_for_user(session: AsyncSession, user_id: int) -> Optional[int]:
    """The player profile linked to a user account, if any."""
    result = await session.execute(
        select(Player.id).where(Player.user_id == user_id).order_by(Player.id).limit(1)
    )
    return result.scalar_one_or_none()


def _user_to_dict(user: User) -> Dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "is_active": user.is_active,
        "is_verified": user.is_verified,
        "created_at": to_iso(user.created_at),
    }
