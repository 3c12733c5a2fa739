""" constants.py
"""
from __future__ import annotations

import bz2
import os
import warnings
import zlib

from enum import Enum
from enum import IntEnum
from enum import IntFlag

from typing import NamedTuple, Optional, Type, Union

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, x25519
from cryptography.hazmat.primitives.ciphers import algorithms
from cryptography.hazmat.primitives._cipheralgorithm import CipherAlgorithm

from .decorators import classproperty

__all__ = [
    'ECFields',
    'EllipticCurveOID',
    'ECPointFormat',
    'PacketType',
    'SymmetricKeyAlgorithm',
    'PubKeyAlgorithm',
    'CompressionAlgorithm',
    'HashAlgorithm',
    'SigSubpacketType',
    'SignatureType',
    'KeyServerPreferences',
    'S2KUsage',
    'String2KeyType',
    'KeyFlags',
    'Features',
    'LiteralFormat',
    'GenerationFailureKind',
    'RsaLength',
]


class ECPointFormat(IntEnum):
    # https://tools.ietf.org/html/draft-ietf-openpgp-rfc4880bis-07#appendix-B
    Standard = 0x04
    Native = 0x40


class PacketType(IntEnum):
    Unknown = -1
    Invalid = 0
    PublicKeyEncryptedSessionKey = 1
    Signature = 2
    SymmetricKeyEncryptedSessionKey = 3
    OnePassSignature = 4
    SecretKey = 5
    PublicKey = 6
    SecretSubKey = 7
    CompressedData = 8
    SymmetricallyEncryptedData = 9
    Marker = 10
    LiteralData = 11
    Trust = 12
    UserID = 13
    PublicSubKey = 14
    UserAttribute = 17
    SymmetricallyEncryptedIntegrityProtectedData = 18
    ModificationDetectionCode = 19

    @classmethod
    def _missing_(cls, val: object) -> PacketType:
        if not isinstance(val, int):
            raise TypeError(f"cannot look up PacketType by non-int {type(val)}")
        return cls.Unknown


class SymmetricKeyAlgorithm(IntEnum):
    """Supported symmetric key algorithms."""
    Plaintext = 0x00
    #: .. warning:: IDEA is insecure. It may never be used for encryption.
    IDEA = 0x01
    #: Triple-DES with 168-bit key derived from 192
    TripleDES = 0x02
    #: CAST5 (or CAST-128) with 128-bit key
    CAST5 = 0x03
    #: Blowfish with 128-bit key and 16 rounds
    Blowfish = 0x04
    #: AES with 128-bit key
    AES128 = 0x07
    #: AES with 192-bit key
    AES192 = 0x08
    #: AES with 256-bit key
    AES256 = 0x09
    #: Camellia with 128-bit key
    Camellia128 = 0x0B
    #: Camellia with 192-bit key
    Camellia192 = 0x0C
    #: Camellia with 256-bit key
    Camellia256 = 0x0D

    def cipher(self, key: bytes) -> CipherAlgorithm:
        if self in {SymmetricKeyAlgorithm.AES128, SymmetricKeyAlgorithm.AES192, SymmetricKeyAlgorithm.AES256}:
            return algorithms.AES(key)
        elif self in {SymmetricKeyAlgorithm.Camellia128, SymmetricKeyAlgorithm.Camellia192, SymmetricKeyAlgorithm.Camellia256}:
            return algorithms.Camellia(key)
        raise NotImplementedError(repr(self))

    @property
    def is_supported(self) -> bool:
        return self in {SymmetricKeyAlgorithm.AES128,
                        SymmetricKeyAlgorithm.AES192,
                        SymmetricKeyAlgorithm.AES256,
                        SymmetricKeyAlgorithm.Camellia128,
                        SymmetricKeyAlgorithm.Camellia192,
                        SymmetricKeyAlgorithm.Camellia256}

    @property
    def is_insecure(self) -> bool:
        return self in {SymmetricKeyAlgorithm.Plaintext, SymmetricKeyAlgorithm.IDEA}

    @property
    def block_size(self) -> int:
        if self in {SymmetricKeyAlgorithm.IDEA,
                    SymmetricKeyAlgorithm.TripleDES,
                    SymmetricKeyAlgorithm.CAST5,
                    SymmetricKeyAlgorithm.Blowfish}:
            return 64
        return 128

    @property
    def key_size(self) -> int:
        ks = {SymmetricKeyAlgorithm.IDEA: 128,
              SymmetricKeyAlgorithm.TripleDES: 192,
              SymmetricKeyAlgorithm.CAST5: 128,
              SymmetricKeyAlgorithm.Blowfish: 128,
              SymmetricKeyAlgorithm.AES128: 128,
              SymmetricKeyAlgorithm.AES192: 192,
              SymmetricKeyAlgorithm.AES256: 256,
              SymmetricKeyAlgorithm.Camellia128: 128,
              SymmetricKeyAlgorithm.Camellia192: 192,
              SymmetricKeyAlgorithm.Camellia256: 256}

        if self in ks:
            return ks[self]

        raise NotImplementedError(repr(self))

    def gen_iv(self) -> bytes:
        return os.urandom(self.block_size // 8)

    def gen_key(self) -> bytes:
        return os.urandom(self.key_size // 8)


class PubKeyAlgorithm(IntEnum):
    """Supported public key algorithms."""
    Unknown = -1
    Invalid = 0x00
    #: Signifies that a key is an RSA key.
    RSAEncryptOrSign = 0x01
    RSAEncrypt = 0x02  # deprecated
    RSASign = 0x03     # deprecated
    #: Signifies that a key is an ElGamal key.
    ElGamal = 0x10
    #: Signifies that a key is a DSA key.
    DSA = 0x11
    #: Signifies that a key is an ECDH key.
    ECDH = 0x12
    #: Signifies that a key is an ECDSA key.
    ECDSA = 0x13
    #: Signifies that a key is an EdDSA (Ed25519) key.
    EdDSA = 0x16

    @classmethod
    def _missing_(cls, val: object) -> PubKeyAlgorithm:
        if not isinstance(val, int):
            raise TypeError(f"cannot look up PubKeyAlgorithm by non-int {type(val)}")
        return cls.Unknown

    @property
    def can_gen(self) -> bool:
        return self in {PubKeyAlgorithm.RSAEncryptOrSign,
                        PubKeyAlgorithm.ECDSA,
                        PubKeyAlgorithm.ECDH,
                        PubKeyAlgorithm.EdDSA}

    @property
    def can_encrypt(self) -> bool:
        return self in {PubKeyAlgorithm.RSAEncryptOrSign, PubKeyAlgorithm.ECDH}

    @property
    def can_sign(self) -> bool:
        return self in {PubKeyAlgorithm.RSAEncryptOrSign, PubKeyAlgorithm.ECDSA, PubKeyAlgorithm.EdDSA}


class S2KUsage(IntEnum):
    '''S2KUsage octet for secret key protection.'''
    Unprotected = 0
    # tamper-resistant CFB, with a SHA-1 check hash over the secret material
    CFB = 254
    # legacy CFB, with a two-octet checksum
    MalleableCFB = 255


class _Passthrough:
    # stand-in compressor for CompressionAlgorithm.Uncompressed
    def compress(self, data: bytes) -> bytes:
        return bytes(data)

    def flush(self) -> bytes:
        return b''

    def decompress(self, data: bytes) -> bytes:
        return bytes(data)


class CompressionAlgorithm(IntEnum):
    """Supported compression algorithms."""
    #: No compression
    Uncompressed = 0x00
    #: ZIP DEFLATE
    ZIP = 0x01
    #: ZIP DEFLATE with zlib headers
    ZLIB = 0x02
    #: Bzip2
    BZ2 = 0x03

    def compressor(self):
        """An incremental compressor exposing ``compress(data)`` and ``flush()``."""
        if self is CompressionAlgorithm.Uncompressed:
            return _Passthrough()

        if self is CompressionAlgorithm.ZIP:
            return zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)

        if self is CompressionAlgorithm.ZLIB:
            return zlib.compressobj()

        if self is CompressionAlgorithm.BZ2:
            return bz2.BZ2Compressor()

        raise NotImplementedError(self)

    def compress(self, data: bytes) -> bytes:
        c = self.compressor()
        return c.compress(data) + c.flush()

    def decompress(self, data: bytes) -> bytes:
        if self is CompressionAlgorithm.Uncompressed:
            return bytes(data)

        if self is CompressionAlgorithm.ZIP:
            return zlib.decompress(data, -15)

        if self is CompressionAlgorithm.ZLIB:
            return zlib.decompress(data)

        if self is CompressionAlgorithm.BZ2:
            return bz2.decompress(data)

        raise NotImplementedError(self)


class HashAlgorithm(IntEnum):
    """Supported hash algorithms."""
    Unknown = -1
    Invalid = 0x00
    MD5 = 0x01
    SHA1 = 0x02
    RIPEMD160 = 0x03
    SHA256 = 0x08
    SHA384 = 0x09
    SHA512 = 0x0A
    SHA224 = 0x0B

    @classmethod
    def _missing_(cls, val: object) -> HashAlgorithm:
        if not isinstance(val, int):
            raise TypeError(f"cannot look up HashAlgorithm by non-int {type(val)}")
        return cls.Unknown

    @property
    def hasher(self) -> hashes.Hash:
        return hashes.Hash(self.algorithm)

    @property
    def algorithm(self) -> hashes.HashAlgorithm:
        return getattr(hashes, self.name)()

    @property
    def digest_size(self) -> int:
        return getattr(hashes, self.name).digest_size

    @property
    def is_supported(self) -> bool:
        return self in {HashAlgorithm.SHA1,
                        HashAlgorithm.SHA224,
                        HashAlgorithm.SHA256,
                        HashAlgorithm.SHA384,
                        HashAlgorithm.SHA512}

    @property
    def is_collision_resistant(self) -> bool:
        return self in {HashAlgorithm.SHA224, HashAlgorithm.SHA256, HashAlgorithm.SHA384, HashAlgorithm.SHA512}

    def digest(self, data: bytes) -> bytes:
        'shortcut for computing a quick one-off digest'
        ctx = self.hasher
        ctx.update(data)
        return ctx.finalize()


class ECFields(NamedTuple):
    name: str
    OID: str
    OID_der: bytes
    key_size: int  # in bits
    kdf_halg: HashAlgorithm
    kek_alg: SymmetricKeyAlgorithm
    curve: Type

    def __repr__(self) -> str:
        return f'<Elliptic Curve {self.name} ({self.OID})>'


class EllipticCurveOID(Enum):
    """Supported elliptic curves."""

    #: DJB's fast elliptic curve, for ECDH
    Curve25519 = (x25519, '1.3.6.1.4.1.3029.1.5.1',
                  b'\x2b\x06\x01\x04\x01\x97\x55\x01\x05\x01',
                  'X25519', 256)
    #: Twisted Edwards variant of Curve25519, for EdDSA
    Ed25519 = (ed25519, '1.3.6.1.4.1.11591.15.1',
               b'\x2b\x06\x01\x04\x01\xda\x47\x0f\x01',
               'Ed25519', 256)
    #: NIST P-256, also known as SECG curve secp256r1
    NIST_P256 = (ec.SECP256R1, '1.2.840.10045.3.1.7',
                 b'\x2a\x86\x48\xce\x3d\x03\x01\x07')
    #: NIST P-384, also known as SECG curve secp384r1
    NIST_P384 = (ec.SECP384R1, '1.3.132.0.34',
                 b'\x2b\x81\x04\x00\x22')
    #: NIST P-521, also known as SECG curve secp521r1
    NIST_P521 = (ec.SECP521R1, '1.3.132.0.35',
                 b'\x2b\x81\x04\x00\x23')

    def __new__(cls, impl_cls: Type, oid: str, oid_der: bytes, name: Optional[str] = None, key_size_bits: Optional[int] = None) -> EllipticCurveOID:
        obj = object.__new__(cls)
        if name is None:
            name = impl_cls.name
        if key_size_bits is None:
            key_size_bits = impl_cls.key_size

        algs = {256: (HashAlgorithm.SHA256, SymmetricKeyAlgorithm.AES128),
                384: (HashAlgorithm.SHA384, SymmetricKeyAlgorithm.AES192),
                521: (HashAlgorithm.SHA512, SymmetricKeyAlgorithm.AES256)}

        (kdf_alg, kek_alg) = algs[key_size_bits]

        obj._value_ = ECFields(name, oid, oid_der, key_size_bits, kdf_alg, kek_alg, impl_cls)

        return obj

    @classmethod
    def from_OID(cls, oid: bytes) -> Union[EllipticCurveOID, bytes]:
        for c in EllipticCurveOID:
            if c.value.OID_der == oid:
                return c
        warnings.warn(f"Unknown Elliptic curve OID: {oid!r}")
        return oid

    @classmethod
    def parse(cls, packet: bytearray) -> Union[EllipticCurveOID, bytes]:
        oidlen = packet[0]
        del packet[0]
        ret = EllipticCurveOID.from_OID(bytes(packet[:oidlen]))
        del packet[:oidlen]
        return ret

    @property
    def key_size(self) -> int:
        return self.value.key_size

    @property
    def oid(self) -> str:
        return self.value.OID

    @property
    def kdf_halg(self) -> HashAlgorithm:
        return self.value.kdf_halg

    @property
    def kek_alg(self) -> SymmetricKeyAlgorithm:
        return self.value.kek_alg

    @property
    def curve(self) -> Type:
        return self.value.curve

    @property
    def is_nist(self) -> bool:
        return self in {EllipticCurveOID.NIST_P256, EllipticCurveOID.NIST_P384, EllipticCurveOID.NIST_P521}

    def __bytes__(self) -> bytes:
        return bytes([len(self.value.OID_der)]) + self.value.OID_der

    def __len__(self) -> int:
        return len(self.value.OID_der) + 1


class SigSubpacketType(IntEnum):
    CreationTime = 2
    SigExpirationTime = 3
    KeyExpirationTime = 9
    PreferredSymmetricAlgorithms = 11
    IssuerKeyID = 16
    PreferredHashAlgorithms = 21
    PreferredCompressionAlgorithms = 22
    KeyServerPreferences = 23
    PrimaryUserID = 25
    KeyFlags = 27
    SignersUserID = 28
    Features = 30
    EmbeddedSignature = 32
    IssuerFingerprint = 33


class SignatureType(IntEnum):
    """Types of signatures that can be found in a Signature packet."""

    #: The signer either owns this document, created it, or certifies that it
    #: has not been modified.
    BinaryDocument = 0x00

    #: The signature is calculated over text data with its line endings
    #: converted to ``<CR><LF>``.
    CanonicalDocument = 0x01

    #: No particular claim about how well the certifier checked the identity.
    Generic_Cert = 0x10

    #: No verification of the identity claim was done.
    Persona_Cert = 0x11

    #: Some casual verification of the identity claim was done.
    Casual_Cert = 0x12

    #: Substantial verification of the identity claim was done.
    #: Self-certifications made by a freshly generated key use this type.
    Positive_Cert = 0x13

    #: Statement by the primary key that it owns the subkey.
    Subkey_Binding = 0x18

    #: Statement by a signing subkey that it is owned by the primary key.
    #: Calculated the same way as a ``Subkey_Binding`` signature.
    PrimaryKey_Binding = 0x19

    #: A signature calculated directly on a key.
    DirectlyOnKey = 0x1F


class KeyServerPreferences(IntFlag):
    NoModify = 0x80


class String2KeyType(IntEnum):
    Unknown = -1
    Simple = 0
    Salted = 1
    Reserved = 2
    Iterated = 3

    @classmethod
    def _missing_(cls, val: object) -> String2KeyType:
        if not isinstance(val, int):
            raise TypeError(f"cannot look up String2KeyType by non-int {type(val)}")
        return cls.Unknown

    @property
    def salt_length(self) -> int:
        return 8 if self in {String2KeyType.Salted, String2KeyType.Iterated} else 0


class KeyFlags(IntFlag):
    """Flags that determine a key's capabilities."""
    #: Signifies that a key may be used to certify keys and user ids. Primary keys always have this.
    Certify = 0x01
    #: Signifies that a key may be used to sign messages and documents.
    Sign = 0x02
    #: Signifies that a key may be used to encrypt messages.
    EncryptCommunications = 0x04
    #: Signifies that a key may be used to encrypt storage.
    EncryptStorage = 0x08
    #: Signifies that the private component of a given key may have been split by a secret-sharing mechanism.
    Split = 0x10
    #: Signifies that a key may be used for authentication.
    Authentication = 0x20
    #: Signifies that the private component of a key may be in the possession of more than one person.
    MultiPerson = 0x80

    @classproperty
    def encryption(cls) -> KeyFlags:
        return KeyFlags.EncryptCommunications | KeyFlags.EncryptStorage


class Features(IntFlag):
    SEIPDv1 = 0x01
    # alias (the old name, in RFC 4880):
    ModificationDetection = 0x01

    @classproperty
    def supported(cls) -> Features:
        return Features.SEIPDv1


class LiteralFormat(str, Enum):
    """The data format octet of a Literal Data packet."""
    Binary = 'b'
    Text = 't'
    UTF8 = 'u'


class GenerationFailureKind(Enum):
    """Why a key ring could not be generated."""
    #: The primitive layer does not implement the requested algorithm or curve.
    UnsupportedAlgorithm = 'unsupported algorithm'
    #: The requested key parameters are not valid for the algorithm.
    InvalidParameters = 'invalid parameters'
    #: The primitive layer refused an otherwise well-formed request.
    PrimitiveRejected = 'primitive rejected'


class RsaLength(IntEnum):
    """RSA modulus lengths offered by the key-spec builder."""
    RSA_2048 = 2048
    RSA_3072 = 3072
    RSA_4096 = 4096
    RSA_8192 = 8192
