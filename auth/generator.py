"""
auth/generator.py -- Challenge secret generation.

Both secrets come from the `secrets` module (the OS CSPRNG). Never use
`random` here: a predictable verification token or 2FA code is an account
takeover.

  Verification token: secrets.token_urlsafe(32) -- 256 bits of entropy,
      URL-safe so it can ride in a ?token= query string unescaped.
  2FA code: secrets.randbelow(10**n), zero-padded to n digits. Uniform over
      the full 000000-999999 range for n=6.

Layer rule: stdlib only.
"""

from __future__ import annotations

import secrets


class SecretGenerator:
    """Pure generator for challenge secrets. No state beyond the code width."""

    def __init__(self, code_length: int = 6, token_bytes: int = 32) -> None:
        if code_length < 1:
            raise ValueError("code_length must be positive")
        self.code_length = code_length
        self.token_bytes = token_bytes

    def new_verification_token(self) -> str:
        return secrets.token_urlsafe(self.token_bytes)

    def new_two_factor_code(self) -> str:
        return f"{secrets.randbelow(10**self.code_length):0{self.code_length}d}"
