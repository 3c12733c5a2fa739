""" fields.py
"""

import abc
import binascii
import collections
import collections.abc
import copy
import itertools
import math
import os

from typing import Optional, Tuple, Union

from warnings import warn

from cryptography.exceptions import InvalidSignature

from cryptography.hazmat.primitives import serialization

from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric import ed25519
from cryptography.hazmat.primitives.asymmetric import padding
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric import utils
from cryptography.hazmat.primitives.asymmetric import x25519

from cryptography.hazmat.primitives.kdf.concatkdf import ConcatKDFHash

from cryptography.hazmat.primitives.keywrap import aes_key_unwrap
from cryptography.hazmat.primitives.keywrap import aes_key_wrap

from cryptography.hazmat.primitives.padding import PKCS7

from . import subpackets
from .subpackets import Signature as SignatureSP

from .types import MPI
from .types import MPIs

from ..constants import ECPointFormat
from ..constants import EllipticCurveOID
from ..constants import HashAlgorithm
from ..constants import PubKeyAlgorithm
from ..constants import S2KUsage
from ..constants import String2KeyType
from ..constants import SymmetricKeyAlgorithm

from ..decorators import sdproperty

from ..errors import PGPDecryptionError
from ..errors import PGPError
from ..errors import PGPIncompatibleECPointFormatError

from ..symenc import _cfb_decrypt
from ..symenc import _cfb_encrypt

from ..types import Field
from ..types import Fingerprint

__all__ = ['SubPackets',
           'Signature',
           'OpaqueSignature',
           'RSASignature',
           'ECDSASignature',
           'EdDSASignature',
           'PubKey',
           'OpaquePubKey',
           'RSAPub',
           'ECPoint',
           'ECDSAPub',
           'EdDSAPub',
           'ECDHPub',
           'S2KSpecifier',
           'String2Key',
           'ECKDF',
           'PrivKey',
           'OpaquePrivKey',
           'RSAPriv',
           'ECDSAPriv',
           'EdDSAPriv',
           'ECDHPriv',
           'CipherText',
           'RSACipherText',
           'ECDHCipherText', ]


class SubPackets(collections.abc.MutableMapping, Field):
    """
    The hashed and unhashed subpacket areas of a V4 signature.

    Subpackets are stored under their class name; ``h_`` prefixes the name for the hashed area.
    Indexing by name returns every subpacket of that type, hashed ones first.
    """

    def __init__(self) -> None:
        super().__init__()
        self._hashed_sp = collections.OrderedDict()
        self._unhashed_sp = collections.OrderedDict()

    def __bytearray__(self) -> bytearray:
        _bytes = bytearray()
        _bytes += self.__hashbytearray__()
        _bytes += self.__unhashbytearray__()
        return _bytes

    def __hashbytearray__(self) -> bytearray:
        _bytes = bytearray()
        _bytes += self.int_to_bytes(sum(len(sp) for sp in self._hashed_sp.values()), 2)
        for hsp in self._hashed_sp.values():
            _bytes += hsp.__bytearray__()
        return _bytes

    def __unhashbytearray__(self) -> bytearray:
        _bytes = bytearray()
        _bytes += self.int_to_bytes(sum(len(sp) for sp in self._unhashed_sp.values()), 2)
        for uhsp in self._unhashed_sp.values():
            _bytes += uhsp.__bytearray__()
        return _bytes

    def __len__(self) -> int:
        return sum(len(sp) for sp in self) + 4

    def __iter__(self):
        yield from itertools.chain(self._hashed_sp.values(), self._unhashed_sp.values())

    def __setitem__(self, key, val):
        # there can be multiple subpackets of the same type, so each is stored as (<classname>, <seqid>)
        i = 0
        d = self._unhashed_sp
        if key.startswith('h_'):
            d, key = self._hashed_sp, key[2:]

        while (key, i) in d:
            i += 1

        d[(key, i)] = val

    def __getitem__(self, key):
        if key.startswith('h_'):
            return [v for k, v in self._hashed_sp.items() if key[2:] == k[0]]

        return [v for k, v in itertools.chain(self._hashed_sp.items(), self._unhashed_sp.items()) if key == k[0]]

    def __delitem__(self, key):
        d = self._unhashed_sp
        if key.startswith('h_'):
            d, key = self._hashed_sp, key[2:]

        for k in [k for k in d if k[0] == key]:
            del d[k]

    def __contains__(self, key):
        return key in {k for k, _ in itertools.chain(self._hashed_sp, self._unhashed_sp)}

    def __copy__(self):
        sp = SubPackets()
        sp._hashed_sp = self._hashed_sp.copy()
        sp._unhashed_sp = self._unhashed_sp.copy()

        return sp

    def addnew(self, spname: str, hashed: bool = False, critical: bool = False, **kwargs) -> None:
        nsp = getattr(subpackets, spname)()
        if critical:
            nsp.header.critical = True
        for p, v in kwargs.items():
            if hasattr(nsp, p):
                setattr(nsp, p, v)
        nsp.update_hlen()
        if hashed:
            self['h_' + spname] = nsp

        else:
            self[spname] = nsp

    def update_hlen(self):
        for sp in self:
            sp.update_hlen()

    def parse(self, packet: bytearray) -> None:
        hl = self.bytes_to_int(packet[:2])
        del packet[:2]

        # track how many bytes have been parsed rather than trusting each subpacket's declared size
        plen = len(packet)
        while plen - len(packet) < hl:
            sp = SignatureSP(packet)
            self['h_' + sp.__class__.__name__] = sp

        uhl = self.bytes_to_int(packet[:2])
        del packet[:2]

        plen = len(packet)
        while plen - len(packet) < uhl:
            sp = SignatureSP(packet)
            self[sp.__class__.__name__] = sp


class Signature(MPIs):
    def __init__(self) -> None:
        for i in self.__mpis__:
            setattr(self, i, MPI(0))

    def __bytearray__(self) -> bytearray:
        _bytes = bytearray()
        for i in self:
            _bytes += i.to_mpibytes()
        return _bytes

    @abc.abstractmethod
    def __sig__(self):
        """return the signature bytes in a format that can be understood by the signature verifier"""

    @abc.abstractmethod
    def from_signer(self, sig):
        """populate this instance from the output of a signer"""


class OpaqueSignature(Signature):
    def __init__(self) -> None:
        super().__init__()
        self.data = bytearray()

    def __bytearray__(self) -> bytearray:
        return self.data

    def __len__(self) -> int:
        return len(self.data)

    def __sig__(self):
        return self.data

    def parse(self, packet: bytearray) -> None:
        self.data = packet[:]
        del packet[:]

    def from_signer(self, sig):
        self.data = bytearray(sig)


class RSASignature(Signature):
    __mpis__ = ('md_mod_n', )

    def __sig__(self):
        return self.md_mod_n.to_mpibytes()[2:]

    def parse(self, packet: bytearray) -> None:
        self.md_mod_n = MPI(packet)

    def from_signer(self, sig):
        self.md_mod_n = MPI(self.bytes_to_int(sig))


class ECDSASignature(Signature):
    __mpis__ = ('r', 's')

    def __sig__(self) -> bytes:
        # return the RFC 3279 encoding:
        return utils.encode_dss_signature(self.r, self.s)

    def from_signer(self, sig: bytes) -> None:
        (r, s) = utils.decode_dss_signature(sig)
        self.r = MPI(r)
        self.s = MPI(s)

    def parse(self, packet: bytearray) -> None:
        self.r = MPI(packet)
        self.s = MPI(packet)


class EdDSASignature(ECDSASignature):
    def from_signer(self, sig):
        lsig = len(sig)
        if lsig % 2 != 0:
            raise PGPError("malformed EdDSA signature")
        split = lsig // 2
        self.r = MPI(self.bytes_to_int(sig[:split]))
        self.s = MPI(self.bytes_to_int(sig[split:]))

    def __sig__(self):
        siglen = (EllipticCurveOID.Ed25519.key_size + 7) // 8
        return self.int_to_bytes(self.r, siglen) + self.int_to_bytes(self.s, siglen)


class PubKey(MPIs):
    __pubfields__: Tuple = ()
    __pubkey_algo__: Optional[PubKeyAlgorithm] = None

    @property
    def __mpis__(self):
        yield from self.__pubfields__

    def __init__(self):
        super().__init__()
        for field in self.__pubfields__:
            setattr(self, field, MPI(0))

    @abc.abstractmethod
    def __pubkey__(self):
        """return the requisite *PublicKey class from the cryptography library"""

    def __len__(self):
        return len(self.__bytearray__())

    def __pubbytearray__(self) -> bytearray:
        _bytes = bytearray()
        for field in self.__pubfields__:
            _bytes += getattr(self, field).to_mpibytes()

        return _bytes

    def __bytearray__(self):
        return self.__pubbytearray__()

    def __copy__(self):
        pk = self.__class__()
        for field in self.__pubfields__:
            setattr(pk, field, copy.copy(getattr(self, field)))
        return pk

    def verify(self, subj, sigbytes, hash_alg):
        raise PGPError("Cannot verify with {}".format(self.__class__.__name__))


class OpaquePubKey(PubKey):
    def __init__(self):
        super().__init__()
        self.data = bytearray()

    def __iter__(self):
        yield self.data

    def __pubkey__(self):
        raise NotImplementedError()

    def __pubbytearray__(self) -> bytearray:
        return self.data

    def parse(self, packet: bytearray) -> None:
        self.data = packet[:]
        del packet[:]


class RSAPub(PubKey):
    __pubfields__ = ('n', 'e')
    __pubkey_algo__ = PubKeyAlgorithm.RSAEncryptOrSign

    def __pubkey__(self):
        return rsa.RSAPublicNumbers(self.e, self.n).public_key()

    def verify(self, subj, sigbytes, hash_alg):
        # zero-pad sigbytes if necessary
        sigbytes = (b'\x00' * (self.n.byte_length() - len(sigbytes))) + sigbytes
        try:
            self.__pubkey__().verify(sigbytes, subj, padding.PKCS1v15(), hash_alg)
        except InvalidSignature:
            return False
        return True

    def parse(self, packet: bytearray) -> None:
        self.n = MPI(packet)
        self.e = MPI(packet)


class ECPoint:
    def __init__(self, packet=None):
        if packet is None:
            return
        xy = bytearray(MPI(packet).to_mpibytes()[2:])
        self.format = ECPointFormat(xy[0])
        del xy[0]
        if self.format == ECPointFormat.Standard:
            xylen = len(xy)
            if xylen % 2 != 0:
                raise PGPError("malformed EC point")
            self.bytelen = xylen // 2
            self.x = MPI(MPIs.bytes_to_int(xy[:self.bytelen]))
            self.y = MPI(MPIs.bytes_to_int(xy[self.bytelen:]))
        else:
            self.bytelen = len(xy)
            self.x = bytes(xy)
            self.y = None

    @classmethod
    def from_values(cls, bitlen, pform, x, y=None):
        ct = cls()
        ct.bytelen = (bitlen + 7) // 8
        ct.format = pform
        ct.x = x
        ct.y = y
        return ct

    def __len__(self) -> int:
        """ Returns length of MPI encoded point """
        return len(self.to_mpibytes())

    def to_mpibytes(self) -> bytes:
        """ Returns MPI encoded point as it should be written in packet """
        b = bytearray()
        b.append(self.format)
        if self.format == ECPointFormat.Standard:
            b += MPIs.int_to_bytes(self.x, self.bytelen)
            b += MPIs.int_to_bytes(self.y, self.bytelen)
        else:
            b += self.x
        return MPI(MPIs.bytes_to_int(b)).to_mpibytes()

    def __bytearray__(self) -> bytearray:
        return bytearray(self.to_mpibytes())

    def __copy__(self) -> 'ECPoint':
        pk = self.__class__()
        pk.bytelen = self.bytelen
        pk.format = self.format
        pk.x = copy.copy(self.x)
        pk.y = copy.copy(self.y)
        return pk


class ECDSAPub(PubKey):
    __pubfields__ = ('p',)
    __pubkey_algo__ = PubKeyAlgorithm.ECDSA

    def __init__(self) -> None:
        super().__init__()
        self.oid = EllipticCurveOID.NIST_P256

    def __pubkey__(self):
        return ec.EllipticCurvePublicNumbers(self.p.x, self.p.y, self.oid.curve()).public_key()

    def __pubbytearray__(self) -> bytearray:
        _b = bytearray()
        _b += bytes(self.oid)
        _b += self.p.to_mpibytes()
        return _b

    def verify(self, subj, sigbytes, hash_alg):
        try:
            self.__pubkey__().verify(sigbytes, subj, ec.ECDSA(hash_alg))
        except InvalidSignature:
            return False
        return True

    def parse(self, packet: bytearray) -> None:
        self.oid = EllipticCurveOID.parse(packet)
        if not isinstance(self.oid, EllipticCurveOID):
            raise PGPError("Unsupported curve OID: {!r}".format(self.oid))

        self.p = ECPoint(packet)
        if self.p.format != ECPointFormat.Standard:
            raise PGPIncompatibleECPointFormatError("Only Standard format is valid for ECDSA")


class EdDSAPub(PubKey):
    __pubfields__ = ('p', )
    __pubkey_algo__ = PubKeyAlgorithm.EdDSA

    def __init__(self) -> None:
        super().__init__()
        self.oid = EllipticCurveOID.Ed25519

    def __pubbytearray__(self) -> bytearray:
        _b = bytearray()
        _b += bytes(self.oid)
        _b += self.p.to_mpibytes()
        return _b

    def __pubkey__(self):
        return ed25519.Ed25519PublicKey.from_public_bytes(self.p.x)

    def verify(self, subj, sigbytes, hash_alg):
        # EdDSA in OpenPGP signs the digest, not the data
        digest = HashAlgorithm(_halg_id(hash_alg)).hasher
        digest.update(subj)
        subj = digest.finalize()
        try:
            self.__pubkey__().verify(sigbytes, subj)
        except InvalidSignature:
            return False
        return True

    def parse(self, packet: bytearray) -> None:
        self.oid = EllipticCurveOID.parse(packet)
        if self.oid is not EllipticCurveOID.Ed25519:
            raise PGPError("Unsupported EdDSA curve: {!r}".format(self.oid))

        self.p = ECPoint(packet)
        if self.p.format != ECPointFormat.Native:
            raise PGPIncompatibleECPointFormatError("Only Native format is valid for EdDSA")


class ECDHPub(PubKey):
    __pubfields__ = ('p',)
    __pubkey_algo__ = PubKeyAlgorithm.ECDH

    def __init__(self) -> None:
        super().__init__()
        self.oid = EllipticCurveOID.NIST_P256
        self.kdf = ECKDF()

    def __pubkey__(self):
        if self.oid == EllipticCurveOID.Curve25519:
            return x25519.X25519PublicKey.from_public_bytes(self.p.x)

        return ec.EllipticCurvePublicNumbers(self.p.x, self.p.y, self.oid.curve()).public_key()

    def __pubbytearray__(self) -> bytearray:
        _b = bytearray()
        _b += bytes(self.oid)
        _b += self.p.to_mpibytes()
        _b += self.kdf.__bytearray__()
        return _b

    def parse(self, packet: bytearray) -> None:
        """
        Algorithm-Specific Fields for ECDH keys:

          o  a variable-length field containing a curve OID

          o  MPI of an EC point representing a public key

          o  a variable-length field containing KDF parameters: a one-octet size, a one-octet
             value 01, a one-octet KDF hash ID, and a one-octet key-wrap cipher ID
        """
        self.oid = EllipticCurveOID.parse(packet)
        if not isinstance(self.oid, EllipticCurveOID):
            raise PGPError("Unsupported curve OID: {!r}".format(self.oid))

        self.p = ECPoint(packet)
        if self.oid == EllipticCurveOID.Curve25519:
            if self.p.format != ECPointFormat.Native:
                raise PGPIncompatibleECPointFormatError("Only Native format is valid for Curve25519")

        elif self.p.format != ECPointFormat.Standard:
            raise PGPIncompatibleECPointFormatError("Only Standard format is valid for this curve")

        self.kdf.parse(packet)


class S2KSpecifier(Field):
    """
    3.7.  String-to-Key (S2K) Specifiers

    Converts a passphrase into a symmetric key. Only the Simple (0), Salted (1) and
    Iterated and Salted (3) types are understood; new specifiers are always Iterated and Salted.

       Octet 0:        0x03
       Octet 1:        hash algorithm
       Octets 2-9:     8-octet salt value
       Octet 10:       count, a one-octet, coded value
    """
    DEFAULT_ITERATION_COUNT = 65011712

    @sdproperty
    def halg(self) -> HashAlgorithm:
        return self._halg

    @halg.register(int)
    def halg_int(self, val) -> None:
        self._halg = HashAlgorithm(val)

    @property
    def iteration_count(self) -> int:
        return self._count

    @iteration_count.setter
    def iteration_count(self, val: int) -> None:
        f = self._convert_iteration_byte_to_count(self._convert_iteration_count_to_byte(val))
        if f != val:
            warn("Could not select S2K iteration count {}, using {} instead".format(val, f))
        self._count = f

    @staticmethod
    def _convert_iteration_count_to_byte(count: int) -> int:
        if count < 1:
            raise ValueError("Cannot set S2K iteration count below 1")
        exponent = min(21, max(6, math.floor(math.log2(count)) - 4))
        mantissa = min(31, max(16, count >> exponent))
        return (mantissa - 16) | ((exponent - 6) << 4)

    @staticmethod
    def _convert_iteration_byte_to_count(octet: int) -> int:
        mantissa = (octet & 0x0f) + 16
        exponent = (octet >> 4) + 6
        return mantissa << exponent

    def __init__(self, s2ktype: String2KeyType = String2KeyType.Iterated,
                 halg: HashAlgorithm = HashAlgorithm.SHA256,
                 salt: Optional[bytes] = None,
                 iteration_count: int = DEFAULT_ITERATION_COUNT) -> None:
        super().__init__()
        self._type = String2KeyType(s2ktype)
        self.halg = halg
        self.salt = os.urandom(self._type.salt_length) if salt is None else bytes(salt)
        self._count = 0
        if self._type is String2KeyType.Iterated:
            self.iteration_count = iteration_count

    def __copy__(self) -> "S2KSpecifier":
        s2k = S2KSpecifier(self._type, self.halg, self.salt)
        s2k._count = self._count
        return s2k

    def __bytearray__(self) -> bytearray:
        _bytes = bytearray([self._type, self.halg])
        _bytes += self.salt
        if self._type is String2KeyType.Iterated:
            _bytes.append(self._convert_iteration_count_to_byte(self._count))
        return _bytes

    def __len__(self) -> int:
        return len(self.__bytearray__())

    def parse(self, packet: bytearray) -> None:
        self._type = String2KeyType(packet[0])
        if self._type not in {String2KeyType.Simple, String2KeyType.Salted, String2KeyType.Iterated}:
            raise PGPError("Unsupported S2K specifier type: {!r}".format(self._type))
        self.halg = packet[1]
        del packet[:2]

        self.salt = bytes(packet[:self._type.salt_length])
        del packet[:self._type.salt_length]

        if self._type is String2KeyType.Iterated:
            self._count = self._convert_iteration_byte_to_count(packet[0])
            del packet[0]

    def derive_key(self, passphrase: bytes, keylen_bits: int) -> bytes:
        hashlen = self.halg.digest_size * 8

        ctx = int(math.ceil((keylen_bits / hashlen)))

        base_count = len(self.salt + passphrase)
        count = base_count
        if self._type is String2KeyType.Iterated and self._count > count:
            count = self._count

        hcount = (count // base_count)
        hleft = count - (hcount * base_count)

        # each extra hash context is preloaded with one more zero octet than the last
        h = []
        for i in range(0, ctx):
            _h = self.halg.hasher
            _h.update(b'\x00' * i + (self.salt + passphrase) * hcount + (self.salt + passphrase)[:hleft])
            h.append(_h)

        return b''.join(hc.finalize() for hc in h)[:(keylen_bits // 8)]


class String2Key(Field):
    """
    Secret key protection: the S2K usage octet, followed (for usage 254 and 255) by the cipher,
    the S2K specifier, and the IV.
    """
    @sdproperty
    def usage(self) -> S2KUsage:
        return self._usage

    @usage.register(int)
    def usage_int(self, val) -> None:
        self._usage = S2KUsage(val)

    @sdproperty
    def encalg(self) -> SymmetricKeyAlgorithm:
        return self._encalg

    @encalg.register(int)
    def encalg_int(self, val) -> None:
        self._encalg = SymmetricKeyAlgorithm(val)

    def __init__(self) -> None:
        super().__init__()
        self.usage = S2KUsage.Unprotected
        self.encalg = SymmetricKeyAlgorithm.Plaintext
        self.specifier = S2KSpecifier()
        self.iv = None

    def gen_iv(self) -> None:
        self.iv = self.encalg.gen_iv()

    def __bytearray__(self) -> bytearray:
        _bytes = bytearray([self.usage])
        if bool(self):
            _bytes.append(self.encalg)
            _bytes += self.specifier.__bytearray__()
            _bytes += self.iv
        return _bytes

    def __len__(self) -> int:
        return len(self.__bytearray__())

    def __bool__(self) -> bool:
        return self.usage in {S2KUsage.CFB, S2KUsage.MalleableCFB}

    def __copy__(self) -> 'String2Key':
        s2k = String2Key()
        s2k.usage = self.usage
        s2k.encalg = self.encalg
        s2k.specifier = copy.copy(self.specifier)
        s2k.iv = self.iv
        return s2k

    def parse(self, packet: bytearray) -> None:
        usage = packet[0]
        del packet[0]
        if usage not in {S2KUsage.Unprotected, S2KUsage.CFB, S2KUsage.MalleableCFB}:
            raise PGPError("Unsupported secret key protection: S2K usage {}".format(usage))
        self.usage = usage

        if bool(self):
            self.encalg = packet[0]
            del packet[0]

            self.specifier.parse(packet)

            ivlen = self.encalg.block_size // 8
            self.iv = bytes(packet[:ivlen])
            del packet[:ivlen]

    def derive_key(self, passphrase: bytes) -> bytes:
        return self.specifier.derive_key(passphrase, self.encalg.key_size)


class ECKDF(Field):
    """
    KDF parameters of an ECDH key: a one-octet size (always 3), a reserved octet (always 1),
    the KDF hash algorithm, and the AES key-wrap algorithm.
    """
    @sdproperty
    def halg(self):
        return self._halg

    @halg.register(int)
    def halg_int(self, val):
        self._halg = HashAlgorithm(val)

    @sdproperty
    def encalg(self):
        return self._encalg

    @encalg.register(int)
    def encalg_int(self, val):
        self._encalg = SymmetricKeyAlgorithm(val)

    def __init__(self):
        super().__init__()
        self.halg = HashAlgorithm.SHA256
        self.encalg = SymmetricKeyAlgorithm.AES128

    def __bytearray__(self) -> bytearray:
        return bytearray([len(self) - 1, 0x01, self.halg, self.encalg])

    def __len__(self):
        return 4

    def __copy__(self):
        kdf = ECKDF()
        kdf.halg = self.halg
        kdf.encalg = self.encalg
        return kdf

    def parse(self, packet: bytearray) -> None:
        if bytes(packet[:2]) != b'\x03\x01':
            raise PGPError("Malformed ECDH KDF parameters")
        del packet[:2]

        self.halg = packet[0]
        del packet[0]

        self.encalg = packet[0]
        del packet[0]

    def derive_key(self, s: bytes, curve: EllipticCurveOID, pkalg: PubKeyAlgorithm, fingerprint: Fingerprint) -> bytes:
        # Param = curve_OID_len || curve_OID || public_key_alg_ID || 03 || 01 || KDF_hash_ID
        #         || KEK_alg_ID for AESKeyWrap || "Anonymous Sender    " || recipient_fingerprint
        data = bytearray()
        data += bytes(curve)
        data.append(pkalg)
        data += b'\x03\x01'
        data.append(self.halg)
        data.append(self.encalg)
        data += b'Anonymous Sender    '
        data += binascii.unhexlify(fingerprint.replace(' ', ''))

        ckdf = ConcatKDFHash(algorithm=self.halg.algorithm, length=self.encalg.key_size // 8, otherinfo=bytes(data))
        return ckdf.derive(s)


class PrivKey(PubKey):
    __privfields__: Tuple = ()

    @property
    def __mpis__(self):
        yield from super().__mpis__
        yield from self.__privfields__

    def __init__(self):
        super().__init__()

        self.s2k = String2Key()
        self.encbytes = bytearray()
        self.chksum = bytearray()

        for field in self.__privfields__:
            setattr(self, field, MPI(0))

    def __privbytearray__(self) -> bytearray:
        _bytes = bytearray()
        for field in self.__privfields__:
            _bytes += getattr(self, field).to_mpibytes()
        return _bytes

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += self.__pubbytearray__()

        _bytes += self.s2k.__bytearray__()
        if self.s2k:
            _bytes += self.encbytes

        else:
            _bytes += self.__privbytearray__()
            _bytes += self.chksum

        return _bytes

    def __copy__(self):
        pk = self.__class__()
        pk.parse(bytearray(self.__bytearray__()))
        return pk

    @abc.abstractmethod
    def __privkey__(self):
        """return the requisite *PrivateKey class from the cryptography library"""

    @abc.abstractmethod
    def _generate(self, params: Optional[Union[int, EllipticCurveOID]]) -> None:
        """Generate new key material"""

    def _compute_chksum(self):
        chs = sum(self.__privbytearray__()) % 65536
        self.chksum = bytearray(self.int_to_bytes(chs, 2))

    @property
    def populated(self) -> bool:
        return all(getattr(self, f) != 0 for f in self.__privfields__)

    def parse(self, packet: bytearray) -> None:
        super().parse(packet)
        self.s2k.parse(packet)

        if self.s2k:
            # the caller bounds packet to the end of the key material
            self.encbytes = packet[:]
            del packet[:]

        else:
            for field in self.__privfields__:
                setattr(self, field, MPI(packet))

            self.chksum = packet[:2]
            del packet[:2]

    def encrypt_keyblob(self, passphrase: bytes,
                        enc_alg: SymmetricKeyAlgorithm = SymmetricKeyAlgorithm.AES256,
                        hash_alg: HashAlgorithm = HashAlgorithm.SHA256) -> None:
        # only ever protect with usage 254 and an iterated and salted S2K
        self.s2k.usage = S2KUsage.CFB
        self.s2k.encalg = enc_alg
        self.s2k.specifier = S2KSpecifier(String2KeyType.Iterated, hash_alg)
        self.s2k.gen_iv()

        sessionkey = self.s2k.derive_key(passphrase)
        del passphrase

        pt = self.__privbytearray__()

        # append a SHA-1 hash of the plaintext so far to the plaintext
        pt += HashAlgorithm.SHA1.digest(bytes(pt))

        self.encbytes = _cfb_encrypt(bytes(pt), bytes(sessionkey), enc_alg, bytes(self.s2k.iv))
        self.chksum = bytearray()

        del pt
        self.clear()

    def decrypt_keyblob(self, passphrase: bytes) -> None:
        if not self.s2k:
            return

        # With V4 keys all secret MPI values are encrypted in CFB mode, including the MPI bitcount prefix.
        sessionkey = self.s2k.derive_key(passphrase)
        del passphrase

        pt = _cfb_decrypt(bytes(self.encbytes), bytes(sessionkey), self.s2k.encalg, bytes(self.s2k.iv))

        if self.s2k.usage is S2KUsage.CFB and not pt[-20:] == HashAlgorithm.SHA1.digest(bytes(pt[:-20])):
            raise PGPDecryptionError("Passphrase was incorrect!")

        if self.s2k.usage is S2KUsage.MalleableCFB and not self.bytes_to_int(pt[-2:]) == (sum(pt[:-2]) % 65536):
            raise PGPDecryptionError("Passphrase was incorrect!")

        for field in self.__privfields__:
            setattr(self, field, MPI(pt))

    def sign(self, sigdata, hash_alg, prehashed=False):
        raise PGPError("Cannot sign with {}".format(self.__class__.__name__))

    def clear(self):
        """delete and re-initialize all private components to zero"""
        for field in self.__privfields__:
            delattr(self, field)
            setattr(self, field, MPI(0))


class OpaquePrivKey(PrivKey, OpaquePubKey):
    def __privkey__(self):
        raise NotImplementedError()

    def _generate(self, params):
        raise NotImplementedError()

    def parse(self, packet: bytearray) -> None:
        OpaquePubKey.parse(self, packet)


class RSAPriv(PrivKey, RSAPub):
    __privfields__ = ('d', 'p', 'q', 'u')

    def __privkey__(self):
        return rsa.RSAPrivateNumbers(self.p, self.q, self.d,
                                     rsa.rsa_crt_dmp1(self.d, self.p),
                                     rsa.rsa_crt_dmq1(self.d, self.q),
                                     rsa.rsa_crt_iqmp(self.p, self.q),
                                     rsa.RSAPublicNumbers(self.e, self.n)).private_key()

    def _generate(self, key_size: Optional[Union[int, EllipticCurveOID]]) -> None:
        if self.populated:
            raise PGPError("key is already populated")

        if key_size is None:
            key_size = 3072

        if not isinstance(key_size, int):
            raise ValueError("Did not understand RSA key size {}".format(key_size))

        pk = rsa.generate_private_key(65537, key_size)
        pkn = pk.private_numbers()

        self.n = MPI(pkn.public_numbers.n)
        self.e = MPI(pkn.public_numbers.e)
        self.d = MPI(pkn.d)
        self.p = MPI(pkn.p)
        self.q = MPI(pkn.q)
        # OpenPGP stores u = p^-1 mod q; rsa_crt_iqmp(p, q) computes q^-1 mod p, so swap them
        self.u = MPI(rsa.rsa_crt_iqmp(pkn.q, pkn.p))

        del pkn
        del pk

        self._compute_chksum()

    def sign(self, sigdata: bytes, hash_alg, prehashed=False) -> bytes:
        if prehashed:
            hash_alg = utils.Prehashed(hash_alg)
        return self.__privkey__().sign(sigdata, padding.PKCS1v15(), hash_alg)


def _generate_nist(oid: EllipticCurveOID):
    if not oid.is_nist:
        raise ValueError("{} is not a NIST curve".format(oid))
    pk = ec.generate_private_key(oid.curve())
    pubn = pk.public_key().public_numbers()
    point = ECPoint.from_values(oid.key_size, ECPointFormat.Standard, MPI(pubn.x), MPI(pubn.y))
    return point, MPI(pk.private_numbers().private_value)


def _halg_id(hash_alg) -> int:
    # map a cryptography hash instance back to its OpenPGP algorithm id
    return HashAlgorithm[hash_alg.name.upper().replace('-', '')]


class ECDSAPriv(PrivKey, ECDSAPub):
    __privfields__ = ('s', )

    def __privkey__(self):
        ecp = ec.EllipticCurvePublicNumbers(self.p.x, self.p.y, self.oid.curve())
        return ec.EllipticCurvePrivateNumbers(self.s, ecp).private_key()

    def _generate(self, params: Optional[Union[int, EllipticCurveOID]]) -> None:
        if self.populated:
            raise PGPError("Key is already populated!")

        self.oid = EllipticCurveOID.NIST_P256 if params is None else params
        if not isinstance(self.oid, EllipticCurveOID):
            raise ValueError("ECDSA keys need an elliptic curve, not {!r}".format(params))

        self.p, self.s = _generate_nist(self.oid)
        self._compute_chksum()

    def sign(self, sigdata, hash_alg, prehashed=False):
        if prehashed:
            hash_alg = utils.Prehashed(hash_alg)
        return self.__privkey__().sign(sigdata, ec.ECDSA(hash_alg))


class EdDSAPriv(PrivKey, EdDSAPub):
    __privfields__ = ('s', )

    def __privkey__(self):
        s = self.int_to_bytes(self.s, (self.oid.key_size + 7) // 8)
        return ed25519.Ed25519PrivateKey.from_private_bytes(s)

    def _generate(self, params: Optional[Union[int, EllipticCurveOID]]) -> None:
        if self.populated:
            raise PGPError("Key is already populated!")

        if params not in {None, EllipticCurveOID.Ed25519}:
            raise ValueError("EdDSA only supported with {}, not {}".format(EllipticCurveOID.Ed25519, params))

        self.oid = EllipticCurveOID.Ed25519
        pk = ed25519.Ed25519PrivateKey.generate()
        x = pk.public_key().public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
        self.p = ECPoint.from_values(self.oid.key_size, ECPointFormat.Native, x)
        self.s = MPI(self.bytes_to_int(pk.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption()
        )))
        self._compute_chksum()

    def sign(self, sigdata, hash_alg, prehashed=False):
        # EdDSA in OpenPGP signs the digest, not the data
        if not prehashed:
            digest = HashAlgorithm(_halg_id(hash_alg)).hasher
            digest.update(sigdata)
            sigdata = digest.finalize()
        return self.__privkey__().sign(sigdata)


class ECDHPriv(PrivKey, ECDHPub):
    __privfields__ = ('s', )

    def __privkey__(self):
        if self.oid == EllipticCurveOID.Curve25519:
            # OpenPGP stores the Curve25519 secret big-endian; cryptography wants it little-endian
            s = self.int_to_bytes(self.s, (self.oid.key_size + 7) // 8, 'little')
            return x25519.X25519PrivateKey.from_private_bytes(s)

        ecp = ec.EllipticCurvePublicNumbers(self.p.x, self.p.y, self.oid.curve())
        return ec.EllipticCurvePrivateNumbers(self.s, ecp).private_key()

    def _generate(self, params: Optional[Union[int, EllipticCurveOID]]) -> None:
        if self.populated:
            raise PGPError("Key is already populated!")

        self.oid = EllipticCurveOID.Curve25519 if params is None else params
        if not isinstance(self.oid, EllipticCurveOID) or self.oid is EllipticCurveOID.Ed25519:
            raise ValueError("ECDH keys need a key agreement curve, not {!r}".format(params))

        if self.oid == EllipticCurveOID.Curve25519:
            pk = x25519.X25519PrivateKey.generate()
            x = pk.public_key().public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
            self.p = ECPoint.from_values(self.oid.key_size, ECPointFormat.Native, x)
            self.s = MPI(self.bytes_to_int(pk.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption()
            ), 'little'))

        else:
            self.p, self.s = _generate_nist(self.oid)

        self.kdf.halg = self.oid.kdf_halg
        self.kdf.encalg = self.oid.kek_alg
        self._compute_chksum()


class CipherText(MPIs):
    def __init__(self):
        super().__init__()
        for i in self.__mpis__:
            setattr(self, i, MPI(0))

    @classmethod
    @abc.abstractmethod
    def encrypt(cls, km, fingerprint, m):
        """wrap ``m`` for the public key material ``km``, returning a new instance"""

    @abc.abstractmethod
    def decrypt(self, km, fingerprint):
        """unwrap and return ``m`` using the private key material ``km``"""

    def __bytearray__(self) -> bytearray:
        _bytes = bytearray()
        for i in self:
            _bytes += i.to_mpibytes()
        return _bytes


class RSACipherText(CipherText):
    __mpis__ = ('me_mod_n', )

    @classmethod
    def encrypt(cls, km, fingerprint, m):
        ct = cls()
        ct.me_mod_n = MPI(cls.bytes_to_int(km.__pubkey__().encrypt(bytes(m), padding.PKCS1v15())))
        return ct

    def decrypt(self, km, fingerprint):
        # pad up ct with null bytes if necessary
        pk = km.__privkey__()
        ct = self.me_mod_n.to_mpibytes()[2:]
        ct = b'\x00' * ((pk.key_size + 7) // 8 - len(ct)) + ct
        return pk.decrypt(ct, padding.PKCS1v15())

    def parse(self, packet: bytearray) -> None:
        self.me_mod_n = MPI(packet)


class ECDHCipherText(CipherText):
    __mpis__ = ('p',)

    @classmethod
    def encrypt(cls, km, fingerprint, m):
        """
        RFC 6637 encoding:

            Generate an ephemeral key pair {v, V=vG}
            Compute the shared point S = vR;
            m = symm_alg_ID || session key || checksum || pkcs5_padding;
            Compute Z = KDF( S, Z_len, Param );
            Compute C = AESKeyWrap( Z, m ) as per [RFC3394]
            Output (MPI(V) || len(C) || C).
        """
        padder = PKCS7(64).padder()
        m = padder.update(bytes(m)) + padder.finalize()

        ct = cls()

        if km.oid == EllipticCurveOID.Curve25519:
            v = x25519.X25519PrivateKey.generate()
            x = v.public_key().public_bytes(encoding=serialization.Encoding.Raw, format=serialization.PublicFormat.Raw)
            ct.p = ECPoint.from_values(km.oid.key_size, ECPointFormat.Native, x)
            s = v.exchange(km.__pubkey__())

        else:
            v = ec.generate_private_key(km.oid.curve())
            x = MPI(v.public_key().public_numbers().x)
            y = MPI(v.public_key().public_numbers().y)
            ct.p = ECPoint.from_values(km.oid.key_size, ECPointFormat.Standard, x, y)
            s = v.exchange(ec.ECDH(), km.__pubkey__())

        z = km.kdf.derive_key(s, km.oid, PubKeyAlgorithm.ECDH, fingerprint)
        ct.c = bytearray(aes_key_wrap(z, m))

        return ct

    def decrypt(self, km, fingerprint):
        if km.oid == EllipticCurveOID.Curve25519:
            v = x25519.X25519PublicKey.from_public_bytes(self.p.x)
            s = km.__privkey__().exchange(v)

        else:
            v = ec.EllipticCurvePublicNumbers(self.p.x, self.p.y, km.oid.curve()).public_key()
            s = km.__privkey__().exchange(ec.ECDH(), v)

        z = km.kdf.derive_key(s, km.oid, PubKeyAlgorithm.ECDH, fingerprint)

        _m = aes_key_unwrap(z, bytes(self.c))

        padder = PKCS7(64).unpadder()
        return padder.update(_m) + padder.finalize()

    def __init__(self) -> None:
        super().__init__()
        self.c = bytearray()

    def __bytearray__(self) -> bytearray:
        _bytes = bytearray()
        _bytes += self.p.to_mpibytes()
        _bytes.append(len(self.c))
        _bytes += self.c
        return _bytes

    def __len__(self) -> int:
        return len(self.p) + 1 + len(self.c)

    def parse(self, packet: bytearray) -> None:
        self.p = ECPoint(packet)
        clen = packet[0]
        del packet[0]
        self.c = packet[:clen]
        del packet[:clen]
