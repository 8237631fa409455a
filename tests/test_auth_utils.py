import pytest
from starlette.requests import Request
from phonegate.auth.utils import generate_otp_code, hash_otp_code, hash_token, otp_code_matches
from phonegate.common.utils import client_ip_from_request

PHONE = "+14155552671"


@pytest.mark.parametrize("length", [1, 4, 6, 8])
def test_generate_otp_code_has_fixed_width(length):
    for _ in range(50):
        code = generate_otp_code(length)
        assert len(code) == length
        assert code.isdigit()


def test_generate_otp_code_rejects_zero_length():
    with pytest.raises(ValueError):
        generate_otp_code(0)


def test_otp_digest_is_bound_to_phone_and_secret():
    digest = hash_otp_code("123456", PHONE, "s1")

    assert otp_code_matches("123456", PHONE, "s1", digest)
    assert not otp_code_matches("123457", PHONE, "s1", digest)
    assert not otp_code_matches("123456", "+14155550000", "s1", digest)
    assert not otp_code_matches("123456", PHONE, "s2", digest)


def test_hash_token_is_stable_hex():
    assert hash_token("abc") == hash_token("abc")
    assert hash_token("abc") != hash_token("abd")
    assert len(hash_token("abc", "sha256")) == 64


def _request(headers=None, client=("10.0.0.5", 5000)):
    scope = {"type": "http", "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
             "client": client}
    return Request(scope)


def test_client_ip_prefers_forwarded_for():
    assert client_ip_from_request(_request({"X-Forwarded-For": "198.51.100.1, 10.0.0.1"})) == "198.51.100.1"
    assert client_ip_from_request(_request({"X-Real-IP": "198.51.100.2"})) == "198.51.100.2"
    assert client_ip_from_request(_request()) == "10.0.0.5"
    assert client_ip_from_request(_request(client=None)) == "unknown"
