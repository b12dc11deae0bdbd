from __future__ import annotations

import jwt

from fixitnow_chat.application.dto.principal import CurrentUser
from fixitnow_chat.domain.value_objects.enums import UserRole
from fixitnow_chat.domain.value_objects.ids import coerce_user_id

# Claims checked, in order, for the numeric user id.
USER_ID_CLAIMS = ("userId", "id", "sub")


class HmacVerifier:
    """Verify JWTs signed with the shared FixItNow HMAC secret."""

    def __init__(self, secret: str, algorithm: str = "HS512") -> None:
        self._secret = secret
        self._algorithm = algorithm

    async def verify(self, token: str) -> CurrentUser:
        payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])

        user_id = None
        for claim in USER_ID_CLAIMS:
            user_id = coerce_user_id(payload.get(claim))
            if user_id is not None:
                break
        if user_id is None:
            raise jwt.InvalidTokenError("token carries no numeric user id")

        try:
            role = UserRole(str(payload.get("role") or UserRole.CUSTOMER).upper())
        except ValueError:
            role = UserRole.CUSTOMER
        return CurrentUser(id=user_id, name=payload.get("name"), role=role)
