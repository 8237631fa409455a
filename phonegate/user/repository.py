from datetime import datetime
from typing import Optional
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from phonegate.auth.constants import DEFAULT_USER_NAME, logger
from phonegate.common.phone import mask_phone
from phonegate.schema.full_schema import Role, Users


async def find_user_by_phone(session, phone: str) -> Optional[Users]:
    stmt = select(Users).where(Users.phone == phone)
    res = await session.execute(stmt)
    return res.scalar_one_or_none()


async def find_user_by_id(session, user_id: int) -> Optional[Users]:
    return await session.get(Users, user_id)


async def create_user(session, phone: str, at: Optional[datetime] = None, name: str = DEFAULT_USER_NAME) -> Users:
    values = {"phone": phone, "name": name, "role": Role.USER}
    if at is not None:
        values.update(created_at=at, updated_at=at)
    user = Users(**values)
    session.add(user)
    await session.flush()
    logger.info("user.created", extra={"user_public_id": str(user.public_id), "phone": mask_phone(phone)})
    return user


async def find_or_create_user(session, phone: str, at: Optional[datetime] = None) -> Users:
    """Placeholder profile for first-time phones; a concurrent insert of the same phone is tolerated."""
    user = await find_user_by_phone(session, phone)
    if user:
        return user
    try:
        async with session.begin_nested():
            user = await create_user(session, phone, at=at)
        return user
    except IntegrityError:
        logger.info("user.duplicate.phone", extra={"phone": mask_phone(phone)})
        user = await find_user_by_phone(session, phone)
        if user is None:
            raise
        return user


async def save_user(session, user: Users) -> Users:
    session.add(user)
    await session.flush()
    return user


async def stamp_last_login(session, user: Users, at: datetime) -> Users:
    user.last_login_at = at
    user.updated_at = at
    return await save_user(session, user)
