""" config.py

Configuration objects for key rings and message encryption.
"""
from typing import Callable, NamedTuple, Optional

from .constants import CompressionAlgorithm
from .constants import HashAlgorithm
from .constants import SymmetricKeyAlgorithm

from .errors import PGPInsecureCipherError
from .errors import UnsupportedAlgorithm

from .passphrase import Passphrase

from .pgp import PGPKey
from .pgp import PGPKeyring

__all__ = ['EncryptionConfig',
           'KeyringConfig']


class EncryptionConfig(NamedTuple):
    """
    Algorithm choices for :py:obj:`~pgpstream.pipeline.SignEncryptPipeline`.

    :param armor: ASCII-armor the output
    :param integrity_protection: write a Sym. Encrypted Integrity Protected Data packet; a legacy
                                 Symmetrically Encrypted Data packet otherwise
    :param hash_algorithm: the hash used for the message signature
    :param symmetric_algorithm: the cipher used for the message body
    :param compression: the compression used inside the encrypted layer
    :param buffer_size: how many octets are read from the input at a time
    """
    armor: bool = True
    integrity_protection: bool = True
    hash_algorithm: HashAlgorithm = HashAlgorithm.SHA256
    symmetric_algorithm: SymmetricKeyAlgorithm = SymmetricKeyAlgorithm.AES256
    compression: CompressionAlgorithm = CompressionAlgorithm.ZLIB
    buffer_size: int = 1 << 16

    def check(self) -> 'EncryptionConfig':
        """
        Validate the algorithm choices, returning a copy with every algorithm as its enum member.

        :raises: :py:exc:`~pgpstream.errors.UnsupportedAlgorithm` if an algorithm is not available
        :raises: :py:exc:`~pgpstream.errors.PGPInsecureCipherError` if the cipher is known to be insecure
        :raises: :py:exc:`ValueError` if ``buffer_size`` is not positive
        """
        try:
            halg = HashAlgorithm(self.hash_algorithm)
            calg = SymmetricKeyAlgorithm(self.symmetric_algorithm)
            comp = CompressionAlgorithm(self.compression)

        except ValueError as ex:
            raise UnsupportedAlgorithm(str(ex)) from ex

        if not halg.is_supported:
            raise UnsupportedAlgorithm("Hash algorithm {:s} is not supported".format(halg.name))

        if not halg.is_collision_resistant:
            raise UnsupportedAlgorithm("Hash algorithm {:s} is not collision resistant".format(halg.name))

        if calg.is_insecure:
            raise PGPInsecureCipherError("{:s} is not secure. Do not use it for encryption!".format(calg.name))

        if not calg.is_supported:
            raise UnsupportedAlgorithm("Cipher {:s} is not supported".format(calg.name))

        if self.buffer_size <= 0:
            raise ValueError("buffer_size must be positive, not {:d}".format(self.buffer_size))

        return self._replace(hash_algorithm=halg, symmetric_algorithm=calg, compression=comp)


class KeyringConfig(object):
    """
    A public and a secret :py:obj:`~pgpstream.pgp.PGPKeyring`, together with the means to obtain the
    passphrase for any secret key in them.

    ``passphrase_for`` is called with a :py:obj:`~pgpstream.pgp.PGPKey` and must return a
    :py:obj:`~pgpstream.passphrase.Passphrase` that the caller owns and may clear.
    """
    def __init__(self, public_keyring: PGPKeyring, secret_keyring: PGPKeyring,
                 passphrase_for: Callable[[PGPKey], Passphrase], protected: bool = False) -> None:
        super().__init__()
        self._public = public_keyring
        self._secret = secret_keyring
        self._passphrase_for = passphrase_for
        self._protected = protected

    @classmethod
    def with_unprotected_keys(cls, public_keyring: Optional[PGPKeyring] = None,
                              secret_keyring: Optional[PGPKeyring] = None) -> 'KeyringConfig':
        """Every secret key is stored without a passphrase."""
        return cls(public_keyring if public_keyring is not None else PGPKeyring(),
                   secret_keyring if secret_keyring is not None else PGPKeyring(),
                   lambda key: Passphrase.empty())

    @classmethod
    def with_password(cls, public_keyring: Optional[PGPKeyring], secret_keyring: Optional[PGPKeyring],
                      passphrase: Passphrase) -> 'KeyringConfig':
        """
        Every secret key is protected by ``passphrase``. The configuration keeps its own copy, so the
        caller's passphrase can be cleared independently.
        """
        if not isinstance(passphrase, Passphrase):
            passphrase = Passphrase(passphrase)

        held = passphrase.copy()
        return cls(public_keyring if public_keyring is not None else PGPKeyring(),
                   secret_keyring if secret_keyring is not None else PGPKeyring(),
                   lambda key: held.copy(),
                   protected=not held.is_empty)

    @property
    def public_keyring(self) -> PGPKeyring:
        return self._public

    @property
    def secret_keyring(self) -> PGPKeyring:
        return self._secret

    @property
    def is_protected(self) -> bool:
        return self._protected

    def passphrase_for(self, key: PGPKey) -> Passphrase:
        return self._passphrase_for(key)

    def __repr__(self) -> str:
        return "<KeyringConfig [{:d} public, {:d} secret{:s}] at 0x{:02X}>".format(
            len(self._public), len(self._secret), ', protected' if self._protected else '', id(self))
