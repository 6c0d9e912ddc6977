from collections.abc import Callable, Generator, Iterable

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from schoolsched.core.config import get_settings
from schoolsched.core.security import decode_token
from schoolsched.db.session import SessionLocal
from schoolsched.models.user import User, UserRole

security = HTTPBearer()

# Platform superadmins carry no school and are not admitted to tenant scheduling routes.
MANAGER_ROLES = (UserRole.school, UserRole.admin_office)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    token = credentials.credentials
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(token)
        user_id = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except JWTError as exc:
        raise credentials_exception from exc

    user = db.get(User, user_id)
    if user is None:
        raise credentials_exception
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is inactive")
    return user


def require_roles(*roles: UserRole) -> Callable[[User], User]:
    allowed_roles: Iterable[UserRole] = set(roles)

    def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
        return current_user

    return role_checker


def school_scope(user: User) -> str:
    """Tenant id for every scheduling query; never taken from the request body."""
    if not user.school_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User is not attached to a school")
    return user.school_id


class Pagination:
    def __init__(
        self,
        page: int = Query(default=1, ge=1),
        limit: int | None = Query(default=None, ge=1),
    ) -> None:
        settings = get_settings()
        self.page = page
        self.limit = min(limit or settings.default_page_size, settings.max_page_size)

    def total_pages(self, total: int) -> int:
        return (total + self.limit - 1) // self.limit
