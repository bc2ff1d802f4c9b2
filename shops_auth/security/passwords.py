from passlib.context import CryptContext


class PasswordHasher:
    def __init__(self, rounds: int = 12):
        self._ctx = CryptContext(schemes=['bcrypt'], deprecated='auto', bcrypt__rounds=rounds)

    def hash(self, password: str) -> str: return self._ctx.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        try:
            return self._ctx.verify(password, password_hash)
        except ValueError:
            # Unrecognised or corrupt stored hash.
            return False
