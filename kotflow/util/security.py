import jwt
from datetime import datetime, timedelta, timezone
from kotflow.config import settings

ALGORITHM = "HS256"


def create_token(sub: str) -> str:
    """Bearer token for a till or kitchen display; ``sub`` ends up as ``created_by`` on orders."""
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=settings.JWT_EXP_MIN)
    payload = {"sub": sub, "iss": settings.JWT_ISS, "iat": int(now.timestamp()), "exp": int(exp.timestamp())}
    return jwt.encode(payload, settings.APP_SECRET, algorithm=ALGORITHM)


def decode_token(token: str) -> str:
    data = jwt.decode(token, settings.APP_SECRET, algorithms=[ALGORITHM], issuer=settings.JWT_ISS,
                      options={"verify_aud": False})
    return data["sub"]
