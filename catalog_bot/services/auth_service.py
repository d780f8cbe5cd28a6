# catalog_bot/services/auth_service.py

from __future__ import annotations

from typing import Iterable

from telegram import Update, User
from telegram.ext import ContextTypes

from ..config import logger
from ..models import Operator
from ..ui import messages
from .repository import CatalogRepository


async def bootstrap_admins(repository: CatalogRepository, admin_ids: Iterable[int]) -> None:
    """Ensures every configured admin exists as an Operator with full rights."""
    for user_id in admin_ids:
        operator = await repository.get_operator(user_id) or Operator(user_id=user_id)
        if operator.is_admin and operator.can_upload:
            continue
        operator.is_admin = True
        operator.can_upload = True
        await repository.save_operator(operator)
        logger.info(f"[AUTH] Bootstrapped admin operator {user_id}.")


async def register_operator(repository: CatalogRepository, user: User) -> Operator:
    """Creates an Operator record without permissions on first contact."""
    operator = await repository.get_operator(user.id)
    if operator is None:
        operator = Operator(user_id=user.id, username=user.username)
        await repository.save_operator(operator)
        logger.info(f"[AUTH] Registered new operator {user.id} ({user.username}).")
    elif user.username and operator.username != user.username:
        operator.username = user.username
        await repository.save_operator(operator)
    return operator


async def is_user_authorized(
    update: Update, context: ContextTypes.DEFAULT_TYPE, *, admin_only: bool = False
) -> bool:
    """
    Checks whether the user behind the update may run operator commands.

    Upload rights come from the user's Operator record (`can_upload` or
    `is_admin`). With `admin_only` the user must be an admin. A rejected user is
    told so in their private chat.

    Returns:
        True if the user is authorized, False otherwise.
    """
    user = update.effective_user
    if not user:
        logger.warning("Authorization check failed: No effective user found in the update.")
        return False

    repository: CatalogRepository = context.bot_data["REPOSITORY"]
    operator = await repository.get_operator(user.id)
    allowed = operator is not None and (
        operator.is_admin if admin_only else operator.may_upload
    )
    if not allowed:
        logger.warning(
            f"Unauthorized {'admin ' if admin_only else ''}access attempt by user ID: "
            f"{user.id} ({user.username})"
        )
        await context.bot.send_message(
            chat_id=user.id,
            text=messages.ADMIN_ONLY if admin_only else messages.NOT_PERMITTED,
        )
        return False

    return True
