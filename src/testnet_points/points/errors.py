"""Input validation errors raised by the points service.

Guard rejections are not errors: they return ``None``.
"""


class InvalidWalletAddress(ValueError):
    pass


class InvalidAmount(ValueError):
    pass


class ReferralError(ValueError):
    """Referral code unknown, self-referral, or wallet already bound elsewhere."""
