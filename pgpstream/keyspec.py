""" keyspec.py

Descriptions of keys to be generated.
"""
from typing import FrozenSet, NamedTuple, Tuple, Union

from .constants import CompressionAlgorithm
from .constants import EllipticCurveOID
from .constants import Features
from .constants import HashAlgorithm
from .constants import KeyFlags
from .constants import PubKeyAlgorithm
from .constants import RsaLength
from .constants import SymmetricKeyAlgorithm

from .errors import InvalidKeySpec

__all__ = ['KeyType',
           'KeySpec',
           'KeySpecBuilder',
           'DEFAULT_CIPHERS',
           'DEFAULT_HASHES',
           'DEFAULT_COMPRESSION',
           'DEFAULT_FEATURES']

DEFAULT_CIPHERS = (SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES192, SymmetricKeyAlgorithm.AES128)
DEFAULT_HASHES = (HashAlgorithm.SHA512, HashAlgorithm.SHA384, HashAlgorithm.SHA256, HashAlgorithm.SHA224)
DEFAULT_COMPRESSION = (CompressionAlgorithm.ZLIB, CompressionAlgorithm.BZ2, CompressionAlgorithm.ZIP,
                       CompressionAlgorithm.Uncompressed)
DEFAULT_FEATURES = frozenset({Features.ModificationDetection})

# usages that are exercised by making signatures
_signing_usage = frozenset({KeyFlags.Certify, KeyFlags.Sign, KeyFlags.Authentication})
_encryption_usage = frozenset({KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})


class KeyType(NamedTuple):
    """A public key algorithm together with its key size or curve."""
    algorithm: PubKeyAlgorithm
    parameter: Union[int, EllipticCurveOID]

    @classmethod
    def rsa(cls, length: Union[RsaLength, int] = RsaLength.RSA_3072) -> 'KeyType':
        try:
            length = RsaLength(length)

        except ValueError as ex:
            raise InvalidKeySpec("Unsupported RSA key length: {}".format(length)) from ex

        return cls(PubKeyAlgorithm.RSAEncryptOrSign, length)

    @classmethod
    def ecdsa(cls, curve: EllipticCurveOID = EllipticCurveOID.NIST_P256) -> 'KeyType':
        if not isinstance(curve, EllipticCurveOID) or not curve.is_nist:
            raise InvalidKeySpec("ECDSA keys need a NIST curve, not {!r}".format(curve))
        return cls(PubKeyAlgorithm.ECDSA, curve)

    @classmethod
    def ecdh(cls, curve: EllipticCurveOID = EllipticCurveOID.NIST_P256) -> 'KeyType':
        if not isinstance(curve, EllipticCurveOID) or curve is EllipticCurveOID.Ed25519:
            raise InvalidKeySpec("ECDH keys need a key agreement curve, not {!r}".format(curve))
        return cls(PubKeyAlgorithm.ECDH, curve)

    @classmethod
    def eddsa(cls) -> 'KeyType':
        return cls(PubKeyAlgorithm.EdDSA, EllipticCurveOID.Ed25519)

    @classmethod
    def cv25519(cls) -> 'KeyType':
        return cls(PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519)

    @property
    def can_sign(self) -> bool:
        return self.algorithm.can_sign

    @property
    def can_encrypt(self) -> bool:
        return self.algorithm.can_encrypt

    def __str__(self) -> str:
        if isinstance(self.parameter, EllipticCurveOID):
            return '{} {}'.format(self.algorithm.name, self.parameter.name)
        return '{}-{}'.format(self.algorithm.name, int(self.parameter))


class KeySpec(NamedTuple):
    """
    One key to generate: its type, what it may be used for, and the preferences advertised in
    its self-signature.

    When ``inherit_subpackets_from_master`` is set, the key is bound as a subkey using the master
    key's subpackets (including its usage flags) instead of its own.
    """
    key_type: KeyType
    flags: FrozenSet[KeyFlags]
    preferred_ciphers: Tuple[SymmetricKeyAlgorithm, ...] = ()
    preferred_hashes: Tuple[HashAlgorithm, ...] = ()
    preferred_compression: Tuple[CompressionAlgorithm, ...] = ()
    features: FrozenSet[Features] = frozenset()
    inherit_subpackets_from_master: bool = False

    @property
    def can_certify(self) -> bool:
        return KeyFlags.Certify in self.flags

    def hashed_subpackets(self) -> dict:
        """Keyword arguments for :py:meth:`~pgpstream.pgp.PGPKey.certify` and :py:meth:`~pgpstream.pgp.PGPKey.bind`."""
        prefs = {'usage': set(self.flags)}
        if self.preferred_ciphers:
            prefs['ciphers'] = list(self.preferred_ciphers)
        if self.preferred_hashes:
            prefs['hashes'] = list(self.preferred_hashes)
        if self.preferred_compression:
            prefs['compression'] = list(self.preferred_compression)
        if self.features:
            prefs['features'] = set(self.features)
        return prefs


class KeySpecBuilder(object):
    """
    Builds a :py:obj:`KeySpec`::

        spec = KeySpecBuilder(KeyType.rsa(RsaLength.RSA_3072)) \\
            .allow_key_to_be_used_to(KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage) \\
            .with_default_algorithms() \\
            .build()
    """
    def __init__(self, key_type: KeyType) -> None:
        if not isinstance(key_type, KeyType):
            raise InvalidKeySpec("Expected a KeyType, got {!r}".format(key_type))

        self._key_type = key_type
        self._flags = set()
        self._ciphers = ()
        self._hashes = ()
        self._compression = ()
        self._features = frozenset()
        self._inherit = False

    def allow_key_to_be_used_to(self, *flags: KeyFlags) -> 'KeySpecBuilder':
        self._flags |= {KeyFlags(f) for f in flags}
        return self

    def with_default_algorithms(self) -> 'KeySpecBuilder':
        return self.with_detailed_configuration(DEFAULT_CIPHERS, DEFAULT_HASHES, DEFAULT_COMPRESSION, DEFAULT_FEATURES)

    def with_detailed_configuration(self, ciphers=(), hashes=(), compression=(), features=()) -> 'KeySpecBuilder':
        self._ciphers = tuple(SymmetricKeyAlgorithm(c) for c in ciphers)
        self._hashes = tuple(HashAlgorithm(h) for h in hashes)
        self._compression = tuple(CompressionAlgorithm(c) for c in compression)
        self._features = frozenset(Features(f) for f in features)

        for cipher in self._ciphers:
            if cipher.is_insecure:
                raise InvalidKeySpec("{} is not a secure cipher preference".format(cipher.name))

        return self

    def with_inherited_subpackets(self) -> 'KeySpecBuilder':
        self._inherit = True
        return self

    def build(self) -> KeySpec:
        if not self._flags:
            raise InvalidKeySpec("A key must be allowed at least one usage")

        if self._flags & _signing_usage and not self._key_type.can_sign:
            raise InvalidKeySpec("{} keys cannot be used to {}".format(
                self._key_type, ', '.join(sorted(f.name for f in self._flags & _signing_usage))))

        if self._flags & _encryption_usage and not self._key_type.can_encrypt:
            raise InvalidKeySpec("{} keys cannot be used for encryption".format(self._key_type))

        return KeySpec(self._key_type, frozenset(self._flags), self._ciphers, self._hashes, self._compression,
                       self._features, self._inherit)
