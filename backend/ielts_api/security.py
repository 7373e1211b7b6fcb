from __future__ import annotations
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .db import get_db
from .errors import AuthenticationError, AuthorizationError, InfrastructureError
from .models import AuthSession, Role, User, utcnow
from .settings import settings

logger = logging.getLogger(__name__)

logging.getLogger('passlib').setLevel(logging.ERROR)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
bearer_scheme = HTTPBearer(auto_error=False)


def _truncate_for_bcrypt(password: str) -> str:
	# bcrypt only looks at the first 72 bytes; cut on a UTF-8 boundary
	return password.encode("utf-8")[:72].decode("utf-8", "ignore")


def hash_password(password: str) -> str:
	return pwd_context.hash(_truncate_for_bcrypt(password))


def verify_password(plain_password: str, hashed_password: str) -> bool:
	try:
		return pwd_context.verify(_truncate_for_bcrypt(plain_password), hashed_password)
	except ValueError:
		return False


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	to_encode.update({"exp": datetime.now(timezone.utc) + delta})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def open_session(db: Session, user: User) -> str:
	"""Persist a server-side session for the user and return its bearer token."""
	session_id = uuid.uuid4().hex
	db.add(AuthSession(session_id=session_id, user_id=user.id))
	return create_access_token({"sub": user.id, "jti": session_id, "role": user.role})


def _decode(token: str) -> tuple[str, str]:
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
	except JWTError:
		raise AuthenticationError("Invalid or expired token")
	user_id = payload.get("sub")
	jti = payload.get("jti")
	if not user_id or not jti:
		raise AuthenticationError("Invalid or expired token")
	return user_id, jti


def resolve_token(db: Session, token: str) -> tuple[User, AuthSession]:
	user_id, jti = _decode(token)
	try:
		row = db.get(AuthSession, jti)
		if row is None or row.user_id != user_id:
			raise AuthenticationError("Session has ended, please log in again")
		user = db.get(User, user_id)
		if user is None:
			raise AuthenticationError("User no longer exists")
		if not user.is_active:
			raise AuthenticationError("Account is deactivated")
		row.last_activity_at = utcnow()
		db.commit()
	except SQLAlchemyError as exc:
		db.rollback()
		raise InfrastructureError("Could not verify credentials") from exc
	return user, row


def get_current_user(
	credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
	db: Session = Depends(get_db),
) -> User:
	if credentials is None or not credentials.credentials:
		raise AuthenticationError("No authorization header provided", kind="missing_credentials")
	user, _ = resolve_token(db, credentials.credentials)
	return user


def has_role(user: User, roles: Iterable[Role]) -> bool:
	return user.role in {r.value for r in roles}


def require_roles(*roles: Role) -> Callable[..., User]:
	def _guard(user: User = Depends(get_current_user)) -> User:
		if not has_role(user, roles):
			raise AuthorizationError("You do not have permission to perform this action")
		return user

	return _guard


require_admin = require_roles(Role.admin)


def ensure_seed_admin(db: Session) -> None:
	email = (settings.seed_admin_email or "").strip().lower()
	password = settings.seed_admin_password
	if not email or not password:
		return
	if db.query(User).filter(User.email == email).first():
		return
	db.add(User(name=settings.seed_admin_name, email=email, password_hash=hash_password(password), role=Role.admin.value))
	db.commit()
	logger.info("Seeded admin account %s", email)
