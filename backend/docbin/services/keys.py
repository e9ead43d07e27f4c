# backend/docbin/services/keys.py
import secrets
import string

KEY_ALPHABET = string.ascii_lowercase + string.digits
MIN_KEY_LENGTH = 8


class KeyGenerator:
    """Random document keys drawn from a url safe, case-insensitive alphabet"""

    def __init__(self, length: int = MIN_KEY_LENGTH, alphabet: str = KEY_ALPHABET):
        if length < MIN_KEY_LENGTH:
            raise ValueError(f"key length must be at least {MIN_KEY_LENGTH}, got {length}")
        self.length = length
        self.alphabet = alphabet

    def generate(self) -> str:
        return "".join(secrets.choice(self.alphabet) for _ in range(self.length))
