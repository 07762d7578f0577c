import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt

from .config import JWT_ALGORITHM, JWT_SECRET

logger = logging.getLogger(__name__)

security = HTTPBearer()


def decode_access_token(token: str) -> dict:
    """
    Verify a bearer token issued by the main web app.
    The payload must carry the user id as "id" (or the standard "sub").
    """
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        logger.info("Token expired")
        raise HTTPException(status_code=401, detail="Token expired, please sign in again") from e
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {str(e)}")
        raise HTTPException(status_code=401, detail="Token verification failed, authorization denied") from e

    user_id = payload.get("id") or payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return {**payload, "id": str(user_id)}


async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """FastAPI dependency returning the verified token claims"""
    return decode_access_token(credentials.credentials)
