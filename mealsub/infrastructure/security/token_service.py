from __future__ import annotations

import jwt

from mealsub.application.dto.auth import AccessTokenPayload
from mealsub.application.ports.token_port import TokenPort


class JwtTokenService(TokenPort):
    """Verifies access tokens issued by the platform's auth service."""

    def __init__(self, *, jwt_secret: str, leeway_seconds: int = 0):
        self._jwt_secret = jwt_secret
        self._leeway_seconds = leeway_seconds

    def decode_access_token(self, *, token: str) -> AccessTokenPayload:
        try:
            payload = jwt.decode(
                token,
                self._jwt_secret,
                algorithms=["HS256"],
                leeway=self._leeway_seconds,
                options={"require": ["sub", "exp"]},
            )
        except jwt.PyJWTError as exc:
            raise ValueError("Invalid access token.") from exc

        if payload.get("type") != "access":
            raise ValueError("Invalid token type.")

        user_id = payload.get("sub")
        if not user_id or not isinstance(user_id, str):
            raise ValueError("Invalid token subject.")

        return AccessTokenPayload(user_id=user_id)
