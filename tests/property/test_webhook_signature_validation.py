# Telemost Bot
# Copyright (C) 2026 StrateCode
# Licensed under the GNU Affero General Public License v3 (AGPLv3)

"""
Property-based tests for Slack request signature validation.

For any body and signing secret, a correctly signed fresh request is
accepted and any tampering with body, signature or timestamp is rejected.
"""

from hypothesis import given, strategies as st, settings, assume

from telemost_bot.webhook_handler import SignatureValidator


NOW = 1_760_000_000


@st.composite
def signing_secret(draw):
    return draw(st.text(
        alphabet='abcdef0123456789',
        min_size=32,
        max_size=32
    ))


def make_validator(secret: str) -> SignatureValidator:
    return SignatureValidator(secret, clock=lambda: NOW)


@given(secret=signing_secret(), body=st.binary(max_size=512), skew=st.integers(min_value=-300, max_value=300))
@settings(max_examples=50)
def test_valid_signature_is_accepted(secret, body, skew):
    validator = make_validator(secret)
    timestamp = str(NOW + skew)

    signature = validator.compute_signature(timestamp, body)

    assert validator.validate_signature(timestamp, body, signature)


@given(secret=signing_secret(), body=st.binary(max_size=512), tampered=st.binary(max_size=512))
@settings(max_examples=50)
def test_tampered_body_is_rejected(secret, body, tampered):
    assume(body != tampered)
    validator = make_validator(secret)
    timestamp = str(NOW)

    signature = validator.compute_signature(timestamp, body)

    assert not validator.validate_signature(timestamp, tampered, signature)


@given(secret=signing_secret(), other_secret=signing_secret(), body=st.binary(max_size=256))
@settings(max_examples=50)
def test_signature_from_other_secret_is_rejected(secret, other_secret, body):
    assume(secret != other_secret)
    timestamp = str(NOW)

    signature = make_validator(other_secret).compute_signature(timestamp, body)

    assert not make_validator(secret).validate_signature(timestamp, body, signature)


@given(secret=signing_secret(), age=st.integers(min_value=301, max_value=86_400))
@settings(max_examples=50)
def test_stale_timestamp_is_rejected(secret, age):
    validator = make_validator(secret)
    timestamp = str(NOW - age)
    body = b"command=%2Ftelemost&text=start"

    signature = validator.compute_signature(timestamp, body)

    assert not validator.validate_signature(timestamp, body, signature)


@given(secret=signing_secret(), timestamp=st.text(alphabet='abcxyz-. ', min_size=1, max_size=10))
@settings(max_examples=30)
def test_non_numeric_timestamp_is_rejected(secret, timestamp):
    validator = make_validator(secret)

    assert not validator.validate_signature(timestamp, b"", "v0=deadbeef")


def test_missing_headers_are_rejected():
    validator = make_validator("a" * 32)

    assert not validator.validate_signature(None, b"", "v0=abc")
    assert not validator.validate_signature(str(NOW), b"", None)
