"""Referral code generation and normalization."""

import re

from testnet_points.points.referrals import generate_referral_code, normalize_referral_code

CODE_RE = re.compile(r"^SHIELD-[0-9A-F]{8}$")


class TestGenerateReferralCode:

    def test_format(self):
        assert CODE_RE.match(generate_referral_code("SHIELD"))

    def test_prefix_uppercased(self):
        assert generate_referral_code("shield").startswith("SHIELD-")

    def test_codes_differ(self):
        codes = {generate_referral_code("SHIELD") for _ in range(200)}
        assert len(codes) == 200


class TestNormalizeReferralCode:

    def test_uppercases(self):
        assert normalize_referral_code("shield-ab12cd34") == "SHIELD-AB12CD34"

    def test_strips(self):
        assert normalize_referral_code("  SHIELD-AB12CD34 ") == "SHIELD-AB12CD34"

    def test_none_is_empty(self):
        assert normalize_referral_code(None) == ""
