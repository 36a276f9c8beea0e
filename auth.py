from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

import config

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


class InvalidToken(Exception):
    pass


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    return pwd_context.verify(password, hashed)


def create_access_token(user: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode = {"sub": str(user["_id"]), "isAdmin": bool(user.get("isAdmin", False)), "exp": expire}
    return jwt.encode(to_encode, config.JWT_PRIVATE_KEY, algorithm=config.ALGORITHM)


def decode_token(token: str) -> Dict[str, Any]:
    """Return the identity carried by ``token``: ``{"id": ..., "isAdmin": ...}``."""
    try:
        payload = jwt.decode(token, config.JWT_PRIVATE_KEY, algorithms=[config.ALGORITHM])
    except JWTError as exc:
        raise InvalidToken(str(exc)) from exc
    user_id = payload.get("sub")
    if user_id is None:
        raise InvalidToken("token has no subject")
    return {"id": user_id, "isAdmin": bool(payload.get("isAdmin", False))}
