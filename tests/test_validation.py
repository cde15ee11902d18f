"""Unit tests for local login / registration input checks."""

from xdrive_driver.domain.validation import validate_login, validate_registration

VALID_FORM = {
    "name": "Jean Dupont",
    "email": "jean@xdrive.com",
    "password": "secret1",
    "phone": "+33 6 12 34 56 78",
    "vehicle": "Peugeot 508",
}


class TestLogin:
    def test_valid(self):
        assert validate_login("admin@xdrive.com", "admin123") == []

    def test_reports_every_problem(self):
        assert validate_login("", "") == ["Email is required", "Password is required"]

    def test_bad_email_format(self):
        assert validate_login("admin@xdrive", "x") == ["Invalid email format"]

    def test_short_password_is_fine_for_login(self):
        assert validate_login("admin@xdrive.com", "a") == []


class TestRegistration:
    def test_valid(self):
        assert validate_registration(VALID_FORM) == []

    def test_short_password(self):
        errors = validate_registration(dict(VALID_FORM, password="12345"))
        assert errors == ["Password must be at least 6 characters long"]

    def test_bad_phone(self):
        errors = validate_registration(dict(VALID_FORM, phone="06-12"))
        assert errors == ["Invalid phone number"]

    def test_empty_form(self):
        errors = validate_registration({})
        assert len(errors) == 5
