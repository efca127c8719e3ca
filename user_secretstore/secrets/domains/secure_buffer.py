"""Scoped holder for decrypted plaintext bytes."""
import logging

logger = logging.getLogger(__name__)


class SecureBuffer:
    """
    Wraps a mutable bytearray and zeroes it when the scope ends.

    Usage:
        with SecureBuffer(protector.unprotect(blob)) as buf:
            text = buf.decode()

    Python str objects cannot be wiped, so only the intermediate bytes are
    covered; the caller owns the returned str.
    """

    def __init__(self, data: bytearray):
        if not isinstance(data, bytearray):
            raise TypeError("SecureBuffer requires a bytearray")
        self._data = data

    def __enter__(self) -> "SecureBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.wipe()
        return False

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"SecureBuffer(<{len(self._data)} bytes>)"

    @property
    def wiped(self) -> bool:
        return len(self._data) == 0

    def decode(self, encoding: str = "utf-8") -> str:
        return self._data.decode(encoding)

    def wipe(self) -> None:
        """Overwrite every byte with zero, then drop the contents."""
        size = len(self._data)
        for i in range(size):
            self._data[i] = 0
        del self._data[:]
        logger.debug(f"Wiped {size}-byte secure buffer")
