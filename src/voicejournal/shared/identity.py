"""
Caller identity for the user-facing API.

Authentication happens upstream (identity provider / gateway); this service
only receives the resolved user id in the ``X-User-Id`` header.
"""

from typing import Annotated

from fastapi import Header

from voicejournal.shared.exceptions import AuthenticationError


async def get_current_user_id(
    x_user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
) -> str:
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise AuthenticationError(message="Unauthorized")
    return user_id
