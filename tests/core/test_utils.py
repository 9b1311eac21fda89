"""
Unit tests for password, OTP and token helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest


class TestPasswordHashing:
    def test_hash_and_verify(self):
        from sgms.core.utils import hash_password, verify_password

        hashed = hash_password("Str0ng!Passw0rd")

        assert hashed != "Str0ng!Passw0rd"
        assert hashed.startswith("$2b$12$")
        assert verify_password("Str0ng!Passw0rd", hashed) is True
        assert verify_password("wrong", hashed) is False

    def test_hash_is_salted(self):
        from sgms.core.utils import hash_password

        assert hash_password("Str0ng!Passw0rd") != hash_password("Str0ng!Passw0rd")

    def test_hash_none_raises(self):
        from sgms.core.utils import hash_password

        with pytest.raises(ValueError):
            hash_password(None)

    def test_verify_bad_input_returns_false(self):
        from sgms.core.utils import verify_password

        assert verify_password(None, "$2b$12$abc") is False
        assert verify_password("secret", None) is False
        assert verify_password("secret", "not-a-bcrypt-hash") is False


class TestPasswordStrength:
    def test_strong_password(self):
        from sgms.core.utils import validate_password_strength

        result = validate_password_strength("Str0ng!Passw0rd")

        assert result["is_valid"] is True
        assert result["errors"] == []
        assert result["strength"] == "very strong"

    def test_missing_classes_are_reported(self):
        from sgms.core.utils import validate_password_strength

        result = validate_password_strength("lowercaseonly")

        assert result["is_valid"] is False
        assert "Password must contain at least one uppercase letter" in result["errors"]
        assert "Password must contain at least one number" in result["errors"]
        assert "Password must contain at least one special character" in result["errors"]
        assert result["strength"] == "weak"

    def test_too_short(self):
        from sgms.core.utils import validate_password_strength

        result = validate_password_strength("Ab1!")

        assert result["is_valid"] is False
        assert any("at least 8" in error for error in result["errors"])

    def test_too_long(self):
        from sgms.core.utils import validate_password_strength

        result = validate_password_strength("Aa1!" * 40)

        assert result["is_valid"] is False
        assert any("must not exceed 128" in error for error in result["errors"])

    def test_common_password_rejected(self):
        from sgms.core.utils import validate_password_strength

        result = validate_password_strength("password123")

        assert result["is_valid"] is False
        assert any("too common" in error for error in result["errors"])

    @pytest.mark.parametrize(
        "password,label",
        [
            ("~~~~~~~~", "very weak"),
            ("abcdefgh", "weak"),
            ("abcdEFGH", "moderate"),
            ("abcdEF12", "strong"),
            ("abcdEF1!", "very strong"),
        ],
    )
    def test_strength_labels(self, password, label):
        from sgms.core.utils import validate_password_strength

        assert validate_password_strength(password)["strength"] == label


class TestOTPHelpers:
    def test_generate_otp_code(self):
        from sgms.core.utils import generate_otp_code

        code = generate_otp_code()

        assert len(code) == 6
        assert code.isdigit()
        assert len(generate_otp_code(8)) == 8

    def test_mask_otp(self):
        from sgms.core.utils import mask_otp

        assert mask_otp("123456") == "12****"
        assert mask_otp("") == "****"
        assert mask_otp(None) == "****"

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("123456", True),
            ("12345", False),
            ("1234567", False),
            ("12a456", False),
            ("", False),
            (None, False),
        ],
    )
    def test_is_valid_otp_format(self, code, expected):
        from sgms.core.utils import is_valid_otp_format

        assert is_valid_otp_format(code, 6) is expected

    def test_hmac_hash_is_deterministic_and_keyed(self):
        from sgms.core.utils import hmac_hash_otp

        first = hmac_hash_otp("123456", "secret")

        assert first == hmac_hash_otp("123456", "secret")
        assert first != hmac_hash_otp("123456", "other-secret")
        assert len(first) == 64

    def test_hmac_hash_rejects_empty_input(self):
        from sgms.core.utils import hmac_hash_otp

        with pytest.raises(ValueError):
            hmac_hash_otp("", "secret")
        with pytest.raises(ValueError):
            hmac_hash_otp("123456", None)

    def test_hmac_verify(self):
        from sgms.core.utils import hmac_hash_otp, hmac_verify_otp

        hashed = hmac_hash_otp("123456", "secret")

        assert hmac_verify_otp("123456", hashed, "secret") is True
        assert hmac_verify_otp("654321", hashed, "secret") is False
        assert hmac_verify_otp(None, hashed, "secret") is False


class TestMiscHelpers:
    def test_hash_token(self):
        from sgms.core.utils import hash_token

        assert hash_token("abc") == hash_token("abc")
        assert hash_token("abc") != hash_token("abd")
        assert len(hash_token("abc")) == 64

    def test_ensure_utc(self):
        from sgms.core.utils import ensure_utc

        naive = datetime(2025, 1, 1, 12, 0)
        aware = datetime(2025, 1, 1, 13, 0, tzinfo=timezone(timedelta(hours=1)))

        assert ensure_utc(None) is None
        assert ensure_utc(naive) == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert ensure_utc(aware) == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_get_device_info(self):
        from sgms.core.utils import get_device_info

        ua = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/120.0"

        assert get_device_info(ua, "10.0.0.1") == "Windows, Chrome (10.0.0.1)"
        assert get_device_info(None, None) is None
