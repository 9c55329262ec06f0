"""Campaign management and coupon issuance with unique Hangul codes, served over Connect JSON."""

__version__ = "0.1.0"