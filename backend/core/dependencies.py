"""
FastAPI dependencies for authentication

Tokens are issued by the account service; here we only verify them and
read the user id from the `sub` claim.
"""
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from .config import SECRET_KEY, ALGORITHM
from .errors import AuthenticationError

security = HTTPBearer(auto_error=False)


def _user_from_token(token: str) -> dict:
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return {"id": user_id, "email": payload.get("email")}


async def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> dict:
    """Get current authenticated user from JWT token"""
    if credentials is None:
        raise AuthenticationError("Not authenticated")
    return _user_from_token(credentials.credentials)


async def get_optional_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> Optional[dict]:
    """Same as get_current_user but anonymous callers get None"""
    if credentials is None:
        return None
    return _user_from_token(credentials.credentials)
