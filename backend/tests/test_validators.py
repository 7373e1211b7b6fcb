import pytest

from ielts_api.errors import ValidationError
from ielts_api.validators import (
    ensure_valid,
    is_email,
    missing_fields,
    password_violations,
    validate_choice,
    validate_login,
    validate_range,
    validate_signup,
)


@pytest.mark.parametrize("value,ok", [
    ("a@b.co", True),
    ("  user@example.com ", True),
    ("no-at-sign.com", False),
    ("two@@example.com", False),
    ("spaces in@example.com", False),
    (None, False),
])
def test_is_email(value, ok):
    assert is_email(value) is ok


def test_strong_password_has_no_violations():
    assert password_violations("Abcdef1!") == []


def test_each_missing_character_class_is_reported():
    codes = [v["message"] for v in password_violations("abcdefgh")]
    assert len(codes) == 3
    assert any("uppercase" in m for m in codes)
    assert any("digit" in m for m in codes)
    assert any("special" in m for m in codes)


def test_missing_fields_treats_blank_as_missing():
    found = missing_fields({"a": "", "b": None, "c": "x", "d": 0}, ("a", "b", "c", "d", "e"))
    assert [v["field"] for v in found] == ["a", "b", "e"]


def test_validate_signup_name_length_and_role():
    body = {"name": "n" * 101, "email": "ok@example.com", "password": "Abcdef1!", "role": "teacher"}
    fields = sorted(v["field"] for v in validate_signup(body))
    assert fields == ["name", "role"]


def test_validate_signup_accepts_valid_body():
    assert validate_signup({"name": "Ann", "email": "ann@example.com", "password": "Abcdef1!", "role": "Student"}) == []


def test_validate_login():
    assert validate_login({"email": "x@example.com", "password": "anything"}) == []
    assert [v["field"] for v in validate_login({"email": "bad", "password": "p"})] == ["email"]


def test_validate_range_and_choice():
    assert validate_range("count", 5, 1, 10) == []
    assert validate_range("count", True, 1, 10)[0]["message"] == "count must be a number"
    assert validate_range("count", 11, 1, 10)[0]["code"] == "out_of_range"
    assert validate_choice("level", "ADVANCED", ("beginner", "advanced")) == []
    assert validate_choice("level", 3, ("beginner",))[0]["code"] == "invalid_choice"


def test_ensure_valid_raises_with_violations():
    ensure_valid([])
    with pytest.raises(ValidationError) as info:
        ensure_valid(validate_login({}))
    assert info.value.status_code == 400
    assert {e["field"] for e in info.value.errors} == {"email", "password"}
