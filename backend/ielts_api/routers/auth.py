from typing import Any, Dict, Optional
import logging

from fastapi import APIRouter, Depends
from fastapi.security import HTTPAuthorizationCredentials
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import AuthenticationError, ConflictError, InfrastructureError, NotFoundError, ValidationError
from ..models import AuthSession, Role, User, utcnow
from ..responses import success_response
from ..security import bearer_scheme, get_current_user, hash_password, open_session, require_admin, resolve_token, verify_password
from ..settings import settings
from ..validators import ensure_valid, validate_login, validate_signup, violation

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


class SignupRequest(BaseModel):
	name: Optional[Any] = None
	email: Optional[Any] = None
	password: Optional[Any] = None
	role: Optional[Any] = None


class LoginRequest(BaseModel):
	email: Optional[Any] = None
	password: Optional[Any] = None


def serialize_user(user: User) -> Dict[str, Any]:
	return {
		"id": user.id,
		"name": user.name,
		"email": user.email,
		"role": user.role,
		"isActive": user.is_active,
		"createdAt": user.created_at,
		"lastLoginAt": user.last_login_at,
	}


@router.post("/signup")
async def signup(req: SignupRequest, db: Session = Depends(get_db)):
	body = req.model_dump()
	ensure_valid(validate_signup(body))
	role = (body.get("role") or Role.student.value).lower()
	if role == Role.admin.value and not settings.allow_admin_signup:
		raise ValidationError("Admin accounts cannot be created through signup", [violation("role", "role must be student", "invalid_choice")])
	email = body["email"].strip().lower()
	if db.query(User).filter(User.email == email).first():
		raise ConflictError("An account with this email already exists")
	user = User(name=body["name"].strip(), email=email, password_hash=hash_password(body["password"]), role=role)
	try:
		db.add(user)
		db.flush()
		token = open_session(db, user)
		db.commit()
	except IntegrityError as exc:
		# Lost a race with a concurrent signup for the same email
		db.rollback()
		raise ConflictError("An account with this email already exists") from exc
	except SQLAlchemyError as exc:
		db.rollback()
		raise InfrastructureError("Could not create account") from exc
	db.refresh(user)
	logger.info("Created %s account %s", user.role, user.email)
	return success_response("Account created", {"user": serialize_user(user), "token": token}, 201)


@router.post("/login")
async def login(req: LoginRequest, db: Session = Depends(get_db)):
	body = req.model_dump()
	ensure_valid(validate_login(body))
	email = body["email"].strip().lower()
	user = db.query(User).filter(User.email == email).first()
	if user is None or not verify_password(str(body["password"]), user.password_hash):
		raise AuthenticationError("Incorrect email or password")
	if not user.is_active:
		raise AuthenticationError("Account is deactivated")
	try:
		user.last_login_at = utcnow()
		token = open_session(db, user)
		db.commit()
	except SQLAlchemyError as exc:
		db.rollback()
		raise InfrastructureError("Could not start session") from exc
	db.refresh(user)
	return success_response("Login successful", {"user": serialize_user(user), "token": token})


@router.post("/logout")
async def logout(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme), db: Session = Depends(get_db)):
	if credentials is None or not credentials.credentials:
		return success_response("Logged out")
	_, session_row = resolve_token(db, credentials.credentials)
	try:
		db.delete(session_row)
		db.commit()
	except SQLAlchemyError as exc:
		db.rollback()
		raise InfrastructureError("Could not end session") from exc
	return success_response("Logged out")


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
	return success_response("Current user", {"user": serialize_user(user)})


@router.get("/users")
async def list_users(admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	users = db.query(User).order_by(User.created_at.desc()).all()
	return success_response("Users retrieved", {"users": [serialize_user(u) for u in users], "results": len(users)})


@router.patch("/users/{user_id}/toggle-status")
async def toggle_user_status(user_id: str, admin: User = Depends(require_admin), db: Session = Depends(get_db)):
	user = db.get(User, user_id)
	if user is None:
		raise NotFoundError("User not found")
	if user.id == admin.id:
		raise ValidationError("You cannot change the status of your own account")
	try:
		user.is_active = not user.is_active
		if not user.is_active:
			# Deactivation ends every open session of that user
			db.query(AuthSession).filter(AuthSession.user_id == user.id).delete()
		db.commit()
	except SQLAlchemyError as exc:
		db.rollback()
		raise InfrastructureError("Could not update user status") from exc
	db.refresh(user)
	state = "activated" if user.is_active else "deactivated"
	logger.info("User %s %s by %s", user.email, state, admin.email)
	return success_response(f"User {state}", {"user": serialize_user(user)})
