"""Tests for webhook HMAC signature verification."""

import base64
import hashlib
import hmac

from orderhub.models import IntegrationTypeEnum
from orderhub.services.signature import (
    SHOPIFY_SIGNATURE_HEADER,
    WOOCOMMERCE_SIGNATURE_HEADER,
    compute_signature,
    mask_secret,
    signature_header_for,
    verify_signature,
)

SECRET = "wh_0123456789abcdef0123456789abcdef01234567"
BODY = b'{"id":9001,"total_price":"42.50"}'


def _sign(body: bytes, secret: str) -> str:
    return base64.b64encode(hmac.new(secret.encode(), body, hashlib.sha256).digest()).decode()


class TestComputeSignature:
    def test_matches_reference_hmac(self):
        assert compute_signature(BODY, SECRET) == _sign(BODY, SECRET)

    def test_depends_on_every_byte(self):
        assert compute_signature(BODY, SECRET) != compute_signature(BODY + b" ", SECRET)


class TestVerifySignature:
    def test_valid_signature(self):
        assert verify_signature(BODY, _sign(BODY, SECRET), SECRET) is True

    def test_signature_from_different_secret_rejected(self):
        other = _sign(BODY, "wh_someone_else")
        assert verify_signature(BODY, other, SECRET) is False

    def test_tampered_body_rejected(self):
        signature = _sign(BODY, SECRET)
        assert verify_signature(BODY.replace(b"42.50", b"0.01"), signature, SECRET) is False

    def test_missing_signature_rejected(self):
        assert verify_signature(BODY, None, SECRET) is False
        assert verify_signature(BODY, "", SECRET) is False

    def test_integration_without_secret_is_ineligible(self):
        signature = _sign(BODY, "")
        assert verify_signature(BODY, signature, None) is False
        assert verify_signature(BODY, signature, "") is False

    def test_garbage_signature_rejected(self):
        assert verify_signature(BODY, "not-base64-at-all", SECRET) is False

    def test_surrounding_whitespace_tolerated(self):
        assert verify_signature(BODY, f" {_sign(BODY, SECRET)} ", SECRET) is True


class TestSignatureHeaders:
    def test_platform_headers_are_distinct(self):
        assert signature_header_for(IntegrationTypeEnum.shopify) == SHOPIFY_SIGNATURE_HEADER
        assert signature_header_for(IntegrationTypeEnum.woocommerce) == WOOCOMMERCE_SIGNATURE_HEADER
        assert SHOPIFY_SIGNATURE_HEADER != WOOCOMMERCE_SIGNATURE_HEADER

    def test_accepts_plain_strings(self):
        assert signature_header_for("shopify") == "x-shopify-hmac-sha256"

    def test_unsupported_platforms_have_no_header(self):
        assert signature_header_for(IntegrationTypeEnum.custom) is None
        assert signature_header_for(IntegrationTypeEnum.wordpress) is None
        assert signature_header_for("magento") is None


class TestMaskSecret:
    def test_masks_all_but_prefix(self):
        assert mask_secret(SECRET) == f"wh_01234... (length: {len(SECRET)})"

    def test_missing_value(self):
        assert mask_secret(None) == "<missing>"
