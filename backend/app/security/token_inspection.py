from typing import Any, Dict, Sequence

import jwt

from ..errors import AuthenticationError

class InvalidTokenError(AuthenticationError):
    """Raised when a token cannot be parsed, is malformed, or fails signature checks."""

    message = "Invalid authentication token"


class ExpiredTokenError(AuthenticationError):
    """Raised when a token has expired."""

    message = "Authentication token has expired"


class JWTTokenVerifier:
    """Verifies identity-provider JWTs and yields the subject id."""

    def __init__(
        self,
        key: str,
        *,
        algorithm: str = "RS256",
        issuer: str | None = None,
        audience: str | Sequence[str] | None = None,
        leeway_seconds: int = 0,
    ) -> None:
        if not key:
            raise ValueError("verification key is required")
        self._key = key
        self._algorithms = [algorithm]
        self._issuer = issuer
        self._audience = audience
        self._leeway = leeway_seconds

    def _parse_token_payload(self, token: str) -> Dict[str, Any]:
        options = {"require": ["sub", "exp"], "verify_aud": self._audience is not None}
        try:
            return jwt.decode(
                token,
                self._key,
                algorithms=self._algorithms,
                issuer=self._issuer,
                audience=self._audience,
                leeway=self._leeway,
                options=options,
            )
        except jwt.ExpiredSignatureError as exc:
            raise ExpiredTokenError() from exc
        except jwt.InvalidTokenError as exc:
            raise InvalidTokenError() from exc

    async def verify(self, credential: str) -> str:
        if not credential or not isinstance(credential, str) or not credential.strip():
            raise InvalidTokenError("Authentication token is missing")

        payload = self._parse_token_payload(credential.strip())
        subject = payload.get("sub")
        if not isinstance(subject, str) or not subject:
            raise InvalidTokenError()
        return subject
