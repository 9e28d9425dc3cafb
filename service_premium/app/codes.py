"""
Redemption code generation.
"""

import math
import secrets

from shared.errors import ValidationError


def generate_code(length: int) -> str:
    """Generate a random lowercase hex code of exactly ``length`` characters."""
    if length < 1:
        raise ValidationError("Code length must be at least 1", {"length": length})
    return secrets.token_hex(math.ceil(length / 2))[:length]
