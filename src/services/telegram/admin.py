"""Administrator check for the policy commands."""

from __future__ import annotations

from services.retention.interfaces import MessagingGateway


async def is_chat_admin(
    gateway: MessagingGateway, chat_id: int, user_id: int | None
) -> bool:
    """True when the user is the chat's owner or an administrator.

    Anonymous senders (no user id) and failed lookups are not admins.
    """
    if user_id is None:
        return False

    role = await gateway.get_chat_member_role(chat_id, user_id)
    return role is not None and role.is_admin
