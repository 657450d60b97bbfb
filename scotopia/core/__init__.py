"""
Core modules for Scotopia.

This package contains the deposit pipeline: privacy tiers, verification,
rate limiting, duplicate detection and attestation minting.
"""
