import os
import threading
from typing import Callable

from constants import CODE_ALPHABET
from logging_config import get_logger

logger = get_logger(__name__)


class CodeGenerator:
    """Uniform random codes over a fixed alphabet.

    Each character is picked by rejection sampling: draw the minimal number of
    bits `p` with 2**p >= len(alphabet), keep the value if it indexes the
    alphabet, otherwise throw it away and draw again. Bits come from a pool
    filled by `entropy(pool_size)` and refilled whenever it runs dry, so callers
    never see exhaustion.
    """

    def __init__(self, alphabet: str = CODE_ALPHABET, entropy: Callable[[int], bytes] = os.urandom, pool_size: int = 32):
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self.alphabet = alphabet
        self.bits_per_draw = max(1, (len(alphabet) - 1).bit_length())
        self._mask = (1 << self.bits_per_draw) - 1
        self._entropy = entropy
        self._pool_size = pool_size
        self._pool = 0
        self._available = 0
        self._lock = threading.Lock()

    def generate(self, length: int) -> str:
        with self._lock:
            return "".join(self._char_at(self._uniform_index()) for _ in range(length))

    def _uniform_index(self) -> int:
        while True:
            value = self._draw()
            if value < len(self.alphabet):
                return value

    def _draw(self) -> int:
        while self._available < self.bits_per_draw:
            self._refill()
        self._available -= self.bits_per_draw
        value = (self._pool >> self._available) & self._mask
        self._pool &= (1 << self._available) - 1
        return value

    def _refill(self):
        chunk = self._entropy(self._pool_size)
        if not chunk:
            logger.debug("Entropy source returned no bytes, retrying")
            return
        self._pool = (self._pool << (8 * len(chunk))) | int.from_bytes(chunk, "big")
        self._available += 8 * len(chunk)

    def _char_at(self, index: int) -> str:
        if not 0 <= index < len(self.alphabet):
            raise RuntimeError(f"Index {index} is outside the code alphabet")
        return self.alphabet[index]


code_generator = CodeGenerator()
