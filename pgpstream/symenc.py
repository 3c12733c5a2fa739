""" symenc.py
"""

from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm

from cryptography.hazmat.primitives.ciphers import Cipher
from cryptography.hazmat.primitives.ciphers import modes

from .constants import SymmetricKeyAlgorithm

from .errors import PGPDecryptionError
from .errors import PGPEncryptionError
from .errors import PGPInsecureCipherError

__all__ = ['_cfb_encrypt',
           '_cfb_decrypt',
           '_cfb_encryptor',
           '_cfb_decryptor',
           '_resync_cfb_decrypt']


def _cfb_encryptor(key: bytes, alg: SymmetricKeyAlgorithm, iv: Optional[bytes] = None):
    """A running CFB encryption context; feed it with ``update`` and close it with ``finalize``."""
    if iv is None:
        iv = b'\x00' * (alg.block_size // 8)

    if alg.is_insecure:
        raise PGPInsecureCipherError("{:s} is not secure. Do not use it for encryption!".format(alg.name))

    if not alg.is_supported:
        raise PGPEncryptionError("Cipher {:s} not supported".format(alg.name))

    try:
        return Cipher(alg.cipher(key), modes.CFB(iv)).encryptor()

    except UnsupportedAlgorithm as ex:  # pragma: no cover
        raise PGPEncryptionError from ex


def _cfb_decryptor(key: bytes, alg: SymmetricKeyAlgorithm, iv: Optional[bytes] = None):
    if iv is None:
        iv = b'\x00' * (alg.block_size // 8)

    if not alg.is_supported:
        raise PGPDecryptionError("Cipher {:s} not supported".format(alg.name))

    try:
        return Cipher(alg.cipher(key), modes.CFB(iv)).decryptor()

    except UnsupportedAlgorithm as ex:  # pragma: no cover
        raise PGPDecryptionError from ex


def _cfb_encrypt(pt: bytes, key: bytes, alg: SymmetricKeyAlgorithm, iv: Optional[bytes] = None) -> bytearray:
    encryptor = _cfb_encryptor(key, alg, iv)
    return bytearray(encryptor.update(pt) + encryptor.finalize())


def _cfb_decrypt(ct: bytes, key: bytes, alg: SymmetricKeyAlgorithm, iv: Optional[bytes] = None) -> bytearray:
    """
    Instead of using an IV, OpenPGP prefixes a string of length
    equal to the block size of the cipher plus two to the data before it
    is encrypted, so the IV passed to the cipher is all zeros unless one is given.
    """
    decryptor = _cfb_decryptor(key, alg, iv)
    return bytearray(decryptor.update(ct) + decryptor.finalize())


def _resync_cfb_decrypt(ct: bytes, key: bytes, alg: SymmetricKeyAlgorithm) -> bytearray:
    """
    Decrypt a Symmetrically Encrypted Data packet body: the random prefix is decrypted with a
    zero IV, then the cipher is resynchronized using octets 3 through ``bs + 2`` of the ciphertext as
    the new IV. The returned plaintext includes the prefix.
    """
    bs = alg.block_size // 8
    prefix = _cfb_decrypt(bytes(ct[:bs + 2]), key, alg)
    body = _cfb_decrypt(bytes(ct[bs + 2:]), key, alg, bytes(ct[2:bs + 2]))
    return prefix + body
