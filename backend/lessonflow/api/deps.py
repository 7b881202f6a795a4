from collections.abc import Generator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from lessonflow.core.security import TeacherContext, TeacherRole, decode_token
from lessonflow.db.session import SessionLocal
from lessonflow.db.store import TableStore

security = HTTPBearer()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_store(db: Session = Depends(get_db)) -> TableStore:
    return TableStore(db)


def get_teacher_context(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TeacherContext:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
    except JWTError as exc:
        raise credentials_exception from exc

    teacher_id = payload.get("sub")
    school_id = payload.get("school_id")
    if not teacher_id or not school_id:
        raise credentials_exception
    try:
        role = TeacherRole(payload.get("role", TeacherRole.teacher.value))
    except ValueError as exc:
        raise credentials_exception from exc
    return TeacherContext(teacher_id=teacher_id, school_id=school_id, role=role)


def require_admin(context: TeacherContext = Depends(get_teacher_context)) -> TeacherContext:
    if not context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")
    return context
