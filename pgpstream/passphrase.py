""" passphrase.py
"""
from typing import Optional, Union

from .errors import PassphraseFailure

__all__ = ['Passphrase']


class Passphrase(object):
    """
    A secret used to protect secret key material.

    The secret is held in a private ``bytearray`` so it can be overwritten in place. :py:meth:`clear`
    zero-fills and truncates it; once cleared, any attempt to read the secret raises
    :py:obj:`~pgpstream.errors.PassphraseFailure`.

    An empty passphrase (see :py:meth:`empty`) means "no protection". It is a real value with its
    own state, not ``None``.

    Used as a context manager, the passphrase is cleared on exit::

        with Passphrase("correct horse") as pw:
            key.protect(pw, SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA256)
    """
    __slots__ = ('_buf', '_cleared')

    def __init__(self, value: Optional[Union[str, bytes, bytearray]] = None) -> None:
        if value is None:
            value = b''

        if isinstance(value, str):
            value = value.encode('utf-8')

        if not isinstance(value, (bytes, bytearray)):
            raise TypeError("Passphrase must be str, bytes, or bytearray, not {}".format(type(value).__name__))

        self._buf = bytearray(value)
        self._cleared = False

    @classmethod
    def empty(cls) -> 'Passphrase':
        return cls()

    @property
    def is_empty(self) -> bool:
        self._check()
        return len(self._buf) == 0

    @property
    def is_cleared(self) -> bool:
        return self._cleared

    def _check(self) -> None:
        if self._cleared:
            raise PassphraseFailure("Passphrase has been cleared")

    def clear(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0
        del self._buf[:]
        self._cleared = True

    def copy(self) -> 'Passphrase':
        self._check()
        return Passphrase(self._buf)

    def __bytes__(self) -> bytes:
        self._check()
        return bytes(self._buf)

    def __len__(self) -> int:
        self._check()
        return len(self._buf)

    def __eq__(self, other):
        if not isinstance(other, Passphrase):
            return NotImplemented
        return bytes(self) == bytes(other)

    __hash__ = None

    def __enter__(self) -> 'Passphrase':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> bool:
        self.clear()
        return False

    def __repr__(self) -> str:
        if self._cleared:
            state = 'cleared'

        elif not self._buf:
            state = 'empty'

        else:
            state = 'set'

        return '<Passphrase [{}] at 0x{:x}>'.format(state, id(self))
