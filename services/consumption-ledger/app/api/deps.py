"""
Consumption Ledger — Shared route dependencies
"""
from dataclasses import dataclass

from fastapi import HTTPException, Query, Request, status

from app.core.clock import Clock, SystemClock
from app.core.config import get_settings

settings = get_settings()

_system_clock = SystemClock()


@dataclass(frozen=True)
class CurrentUser:
    id: str
    is_admin: bool


def get_clock() -> Clock:
    return _system_clock


def current_user(request: Request) -> CurrentUser:
    claims = request.state.user
    return CurrentUser(id=str(claims["sub"]), is_admin=bool(claims.get("is_admin", False)))


def require_admin(request: Request) -> CurrentUser:
    user = current_user(request)
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required.")
    return user


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def envelope(self, data: list, total_count: int) -> dict:
        total_pages = (total_count + self.limit - 1) // self.limit
        return {
            "data": data,
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total_count": total_count,
                "total_pages": total_pages,
                "has_next": self.page < total_pages,
                "has_prev": self.page > 1,
            },
        }


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
) -> PageParams:
    return PageParams(page=page, limit=limit)
