from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import ValidationError
from assessment.core.config import settings
from assessment.core.constants import RoleEnum
from assessment.core.database import SessionLocal
from assessment.schemas.user import CurrentUser, TokenPayload
from assessment.services.course_progress import CourseProgressService, course_progress_service
from assessment.services.exam_attempt import AttemptStateMachine, attempt_engine

http_bearer = HTTPBearer()

def get_transactional_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def get_attempt_engine() -> AttemptStateMachine:
    return attempt_engine

def get_progress_service() -> CourseProgressService:
    return course_progress_service

def decode_token(token: str) -> CurrentUser:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=["HS256"])
        token_data = TokenPayload(**payload)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    if token_data.user_id is None or token_data.role is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return CurrentUser(id=token_data.user_id, role=token_data.role)

def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(http_bearer)
) -> CurrentUser:
    return decode_token(credentials.credentials)

def require_role(*roles: RoleEnum):
    """Dependency that checks the current user has one of the given roles."""
    def _verify_role(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have permission to perform this action."
            )
        return user
    return _verify_role
