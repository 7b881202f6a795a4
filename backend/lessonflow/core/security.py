from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from jose import jwt

from lessonflow.core.config import get_settings

settings = get_settings()


class TeacherRole(str, Enum):
    admin = "admin"
    teacher = "teacher"


@dataclass(frozen=True)
class TeacherContext:
    """Acting teacher and school, passed explicitly into every service."""

    teacher_id: str
    school_id: str
    role: TeacherRole = TeacherRole.teacher

    @property
    def is_admin(self) -> bool:
        return self.role == TeacherRole.admin


def create_access_token(
    subject: str,
    *,
    school_id: str,
    role: TeacherRole = TeacherRole.teacher,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload: dict[str, Any] = {
        "sub": subject,
        "school_id": school_id,
        "role": role.value,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
