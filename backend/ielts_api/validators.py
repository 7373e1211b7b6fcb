from __future__ import annotations
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import ValidationError
from .models import Role

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 8
MAX_NAME_LENGTH = 100

FieldViolation = Dict[str, Any]


def violation(field: str, message: str, code: str = "invalid") -> FieldViolation:
	return {"field": field, "message": message, "code": code}


def is_email(value: Any) -> bool:
	return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def _is_blank(value: Any) -> bool:
	return value is None or (isinstance(value, str) and not value.strip())


def missing_fields(body: Mapping[str, Any], fields: Iterable[str]) -> List[FieldViolation]:
	return [violation(f, f"{f} is required", "required") for f in fields if _is_blank(body.get(f))]


def password_violations(value: Any, field: str = "password") -> List[FieldViolation]:
	if not isinstance(value, str):
		return [violation(field, "password must be a string")]
	out: List[FieldViolation] = []
	if len(value) < MIN_PASSWORD_LENGTH:
		out.append(violation(field, f"password must be at least {MIN_PASSWORD_LENGTH} characters", "too_short"))
	if not re.search(r"[a-z]", value):
		out.append(violation(field, "password must contain a lowercase letter", "weak_password"))
	if not re.search(r"[A-Z]", value):
		out.append(violation(field, "password must contain an uppercase letter", "weak_password"))
	if not re.search(r"\d", value):
		out.append(violation(field, "password must contain a digit", "weak_password"))
	if not re.search(r"[^A-Za-z0-9]", value):
		out.append(violation(field, "password must contain a special character", "weak_password"))
	return out


def validate_range(field: str, value: Any, low: int, high: int) -> List[FieldViolation]:
	if isinstance(value, bool) or not isinstance(value, (int, float)):
		return [violation(field, f"{field} must be a number")]
	if value < low or value > high:
		return [violation(field, f"{field} must be between {low} and {high}", "out_of_range")]
	return []


def validate_choice(field: str, value: Any, choices: Iterable[str]) -> List[FieldViolation]:
	allowed = list(choices)
	if not isinstance(value, str) or value.lower() not in allowed:
		return [violation(field, f"{field} must be one of: {', '.join(allowed)}", "invalid_choice")]
	return []


def validate_signup(body: Mapping[str, Any]) -> List[FieldViolation]:
	errors = missing_fields(body, ("name", "email", "password"))
	missing = {e["field"] for e in errors}
	name = body.get("name")
	if "name" not in missing:
		if not isinstance(name, str):
			errors.append(violation("name", "name must be a string"))
		elif len(name.strip()) > MAX_NAME_LENGTH:
			errors.append(violation("name", f"name must be at most {MAX_NAME_LENGTH} characters", "too_long"))
	if "email" not in missing and not is_email(body.get("email")):
		errors.append(violation("email", "email must be a valid email address"))
	if "password" not in missing:
		errors.extend(password_violations(body.get("password")))
	role = body.get("role")
	if role is not None:
		errors.extend(validate_choice("role", role, [r.value for r in Role]))
	return errors


def validate_login(body: Mapping[str, Any]) -> List[FieldViolation]:
	errors = missing_fields(body, ("email", "password"))
	if not any(e["field"] == "email" for e in errors) and not is_email(body.get("email")):
		errors.append(violation("email", "email must be a valid email address"))
	return errors


def ensure_valid(violations: List[FieldViolation], message: Optional[str] = None) -> None:
	if violations:
		raise ValidationError(message or violations[0]["message"], violations)
