""" packets.py
"""
import abc
import calendar
import re

from datetime import datetime
from datetime import timezone

from typing import Optional, Union

from cryptography.hazmat.primitives import constant_time
from cryptography.hazmat.primitives.keywrap import InvalidUnwrap

from .fields import ECDHCipherText
from .fields import ECDHPriv
from .fields import ECDHPub
from .fields import ECDSAPriv
from .fields import ECDSAPub
from .fields import ECDSASignature
from .fields import EdDSAPriv
from .fields import EdDSAPub
from .fields import EdDSASignature
from .fields import OpaquePrivKey
from .fields import OpaquePubKey
from .fields import OpaqueSignature
from .fields import RSACipherText
from .fields import RSAPriv
from .fields import RSAPub
from .fields import RSASignature
from .fields import SubPackets

from .types import Packet
from .types import Primary
from .types import Private
from .types import Public
from .types import Sub
from .types import VersionedPacket

from ..constants import CompressionAlgorithm
from ..constants import EllipticCurveOID
from ..constants import HashAlgorithm
from ..constants import LiteralFormat
from ..constants import PacketType
from ..constants import PubKeyAlgorithm
from ..constants import SignatureType
from ..constants import SymmetricKeyAlgorithm

from ..decorators import sdproperty

from ..errors import PGPDecryptionError
from ..errors import PGPError

from ..symenc import _cfb_decrypt
from ..symenc import _cfb_encrypt
from ..symenc import _resync_cfb_decrypt

from ..types import Fingerprint
from ..types import KeyID

__all__ = ['PKESessionKey',
           'PKESessionKeyV3',
           'Signature',
           'SignatureV4',
           'OnePassSignature',
           'OnePassSignatureV3',
           'PrivKey',
           'PubKey',
           'PubKeyV4',
           'PrivKeyV4',
           'PrivSubKey',
           'PrivSubKeyV4',
           'CompressedData',
           'SKEData',
           'LiteralData',
           'UserID',
           'PubSubKey',
           'PubSubKeyV4',
           'IntegrityProtectedSKEData',
           'IntegrityProtectedSKEDataV1',
           'MDC']


def _utc(ts: Union[int, datetime]) -> datetime:
    if isinstance(ts, datetime):
        if ts.tzinfo is None:
            return ts.replace(tzinfo=timezone.utc)
        return ts
    return datetime.fromtimestamp(ts, timezone.utc)


class PKESessionKey(VersionedPacket):
    __typeid__ = PacketType.PublicKeyEncryptedSessionKey
    __ver__ = 0

    @abc.abstractmethod
    def decrypt_sk(self, pk):
        """recover ``(symalg, session key)`` with the unlocked private key ``pk``"""

    @abc.abstractmethod
    def encrypt_sk(self, pk, symalg, symkey):
        """wrap ``symkey`` for the public key ``pk``"""


class PKESessionKeyV3(PKESessionKey):
    """
    5.1.  Public-Key Encrypted Session Key Packets (Tag 1)

    The body of this packet consists of:

     - A one-octet number giving the version number of the packet type. The currently defined
       value for packet version is 3.

     - An eight-octet number that gives the Key ID of the public key to which the session key is
       encrypted.

     - A one-octet number giving the public-key algorithm used.

     - A string of octets that is the encrypted session key. This string takes up the remainder
       of the packet, and its contents are dependent on the public-key algorithm used.

    The value "m" that is encrypted is the one-octet algorithm identifier for the symmetric cipher,
    followed by the session key, followed by a two-octet checksum: the sum of the key octets mod 65536.
    """
    __ver__ = 3

    __ct_algos__ = {PubKeyAlgorithm.RSAEncryptOrSign: RSACipherText,
                    PubKeyAlgorithm.RSAEncrypt: RSACipherText,
                    PubKeyAlgorithm.ECDH: ECDHCipherText}

    @sdproperty
    def encrypter(self):
        return self._encrypter

    @encrypter.register(bytearray)
    def encrypter_bin(self, val):
        self._encrypter = KeyID(bytes(val))

    @encrypter.register(str)
    def encrypter_str(self, val):
        self._encrypter = KeyID(val)

    @sdproperty
    def pkalg(self):
        return self._pkalg

    @pkalg.register(int)
    def pkalg_int(self, val):
        self._pkalg = PubKeyAlgorithm(val)

        ctcls = self.__ct_algos__.get(self._pkalg, None)
        self.ct = ctcls() if ctcls is not None else None

    def __init__(self):
        super().__init__()
        self._encrypter = None
        self.pkalg = 0
        self.ct = None

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += bytes(self.encrypter)
        _bytes.append(self.pkalg)
        _bytes += self.ct.__bytearray__() if self.ct is not None else b'\x00' * (self.header.length - 10)
        return _bytes

    def encrypt_sk(self, pk, symalg, symkey):
        self.encrypter = pk.fingerprint.keyid
        self.pkalg = pk.pkalg

        if self.pkalg not in self.__ct_algos__:
            raise PGPError("Cannot encrypt a session key with {!r}".format(PubKeyAlgorithm(pk.pkalg)))

        m = bytearray(self.int_to_bytes(symalg) + symkey)
        m += self.int_to_bytes(sum(bytearray(symkey)) % 65536, 2)

        self.ct = self.__ct_algos__[self.pkalg].encrypt(pk.keymaterial, pk.fingerprint, m)
        del m

        self.update_hlen()

    def decrypt_sk(self, pk):
        if self.ct is None:
            raise PGPDecryptionError("Cannot decrypt a session key encrypted with {!r}".format(self.pkalg))

        try:
            m = bytearray(self.ct.decrypt(pk.keymaterial, pk.fingerprint))
            symalg = SymmetricKeyAlgorithm(m[0])
            keylen = symalg.key_size // 8
            del m[0]

        except (ValueError, IndexError, NotImplementedError, InvalidUnwrap) as ex:
            raise PGPDecryptionError("Could not recover the session key") from ex

        # algorithm octet, key, two octet checksum
        if len(m) != keylen + 2:
            raise PGPDecryptionError("{:s} decryption failed".format(self.pkalg.name))

        symkey = bytes(m[:keylen])
        del m[:keylen]

        checksum = self.bytes_to_int(m[:2])
        del m[:2]

        if not sum(symkey) % 65536 == checksum:
            raise PGPDecryptionError("{:s} decryption failed".format(self.pkalg.name))

        return (symalg, symkey)

    def parse(self, packet):
        super().parse(packet)
        self.encrypter = packet[:8]
        del packet[:8]

        self.pkalg = packet[0]
        del packet[0]

        if self.ct is not None:
            self.ct.parse(packet)

        else:
            del packet[:(self.header.length - 10)]


class Signature(VersionedPacket):
    __typeid__ = PacketType.Signature
    __ver__ = 0


class SignatureV4(Signature):
    """
    5.2.3.  Version 4 Signature Packet Format

    The body of a version 4 Signature packet contains:

     - One-octet version number (4).
     - One-octet signature type.
     - One-octet public-key algorithm.
     - One-octet hash algorithm.
     - Two-octet scalar octet count for following hashed subpacket data.
     - Hashed subpacket data set (zero or more subpackets).
     - Two-octet scalar octet count for the following unhashed subpacket data.
     - Unhashed subpacket data set (zero or more subpackets).
     - Two-octet field holding the left 16 bits of the signed hash value.
     - One or more multiprecision integers comprising the signature.
    """
    __ver__ = 4

    __sig_algos__ = {PubKeyAlgorithm.RSAEncryptOrSign: RSASignature,
                     PubKeyAlgorithm.RSASign: RSASignature,
                     PubKeyAlgorithm.ECDSA: ECDSASignature,
                     PubKeyAlgorithm.EdDSA: EdDSASignature}

    @sdproperty
    def sigtype(self):
        return self._sigtype

    @sigtype.register(int)
    def sigtype_int(self, val):
        self._sigtype = SignatureType(val)

    @sdproperty
    def pubalg(self):
        return self._pubalg

    @pubalg.register(int)
    def pubalg_int(self, val):
        self._pubalg = PubKeyAlgorithm(val)

        sigcls = self.__sig_algos__.get(self._pubalg, OpaqueSignature)
        self.signature = sigcls()

    @sdproperty
    def halg(self):
        return self._halg

    @halg.register(int)
    def halg_int(self, val):
        self._halg = HashAlgorithm(val)

    @property
    def signer(self):
        if 'Issuer' in self.subpackets:
            return self.subpackets['Issuer'][-1].issuer

        if 'IssuerFingerprint' in self.subpackets:
            return self.subpackets['IssuerFingerprint'][-1].issuer_fingerprint.keyid

        return None

    @property
    def signer_fingerprint(self):
        if 'IssuerFingerprint' in self.subpackets:
            return self.subpackets['IssuerFingerprint'][-1].issuer_fingerprint

        return None

    def __init__(self):
        super().__init__()
        self._sigtype = None
        self._pubalg = None
        self._halg = None
        self.subpackets = SubPackets()
        self.hash2 = bytearray(2)
        self.signature = OpaqueSignature()

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += self.int_to_bytes(self.sigtype)
        _bytes += self.int_to_bytes(self.pubalg)
        _bytes += self.int_to_bytes(self.halg)
        _bytes += self.subpackets.__bytearray__()
        _bytes += self.hash2
        _bytes += self.signature.__bytearray__()

        return _bytes

    def canonical_bytes(self):
        """The signed portion of this signature: everything up to and including the hashed subpackets."""
        _body = bytearray()
        _body += self.int_to_bytes(self.header.version)
        _body += self.int_to_bytes(self.sigtype)
        _body += self.int_to_bytes(self.pubalg)
        _body += self.int_to_bytes(self.halg)
        _body += self.subpackets.__hashbytearray__()
        return _body

    def update_hlen(self):
        self.subpackets.update_hlen()
        super().update_hlen()

    def parse(self, packet):
        super().parse(packet)
        # the version octet has already been consumed
        plen = len(packet)
        self.sigtype = packet[0]
        del packet[0]

        self.pubalg = packet[0]
        del packet[0]

        self.halg = packet[0]
        del packet[0]

        self.subpackets.parse(packet)

        self.hash2 = packet[:2]
        del packet[:2]

        if isinstance(self.signature, OpaqueSignature):
            siglen = (self.header.length - 1) - (plen - len(packet))
            self.signature.parse(packet[:siglen])
            del packet[:siglen]

        else:
            self.signature.parse(packet)


class OnePassSignature(VersionedPacket):
    __typeid__ = PacketType.OnePassSignature
    __ver__ = 0


class OnePassSignatureV3(OnePassSignature):
    """
    5.4.  One-Pass Signature Packets (Tag 4)

    The body of this packet consists of:

     - A one-octet version number. The current version is 3.
     - A one-octet signature type.
     - A one-octet number describing the hash algorithm used.
     - A one-octet number describing the public-key algorithm used.
     - An eight-octet number holding the Key ID of the signing key.
     - A one-octet number holding a flag showing whether the signature is nested. A zero value
       indicates that the next packet is another One-Pass Signature packet that describes another
       signature to be applied to the same message data.
    """
    __ver__ = 3

    @sdproperty
    def sigtype(self):
        return self._sigtype

    @sigtype.register(int)
    def sigtype_int(self, val):
        self._sigtype = SignatureType(val)

    @sdproperty
    def pubalg(self):
        return self._pubalg

    @pubalg.register(int)
    def pubalg_int(self, val):
        self._pubalg = PubKeyAlgorithm(val)

    @sdproperty
    def halg(self):
        return self._halg

    @halg.register(int)
    def halg_int(self, val):
        self._halg = HashAlgorithm(val)

    @sdproperty
    def signer(self):
        return self._signer

    @signer.register(str)
    def signer_str(self, val):
        self._signer = KeyID(val)

    @signer.register(bytearray)
    def signer_bin(self, val):
        self._signer = KeyID.parse(val)

    def __init__(self):
        super().__init__()
        self._sigtype = None
        self._halg = None
        self._pubalg = None
        self._signer = None
        self.nested = False

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += bytearray([self.sigtype])
        _bytes += bytearray([self.halg])
        _bytes += bytearray([self.pubalg])
        _bytes += bytes(self.signer)
        _bytes += bytearray([int(self.nested)])
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.sigtype = packet[0]
        del packet[0]

        self.halg = packet[0]
        del packet[0]

        self.pubalg = packet[0]
        del packet[0]

        self.signer = packet[:8]
        del packet[:8]

        self.nested = (packet[0] == 1)
        del packet[0]


class PrivKey(VersionedPacket, Primary, Private):
    __typeid__ = PacketType.SecretKey
    __ver__ = 0


class PubKey(VersionedPacket, Primary, Public):
    __typeid__ = PacketType.PublicKey
    __ver__ = 0

    @abc.abstractproperty
    def fingerprint(self):
        """compute and return the fingerprint of the key"""


class PubKeyV4(PubKey):
    __ver__ = 4

    __keymaterial_algos__ = {PubKeyAlgorithm.RSAEncryptOrSign: RSAPub,
                             PubKeyAlgorithm.RSAEncrypt: RSAPub,
                             PubKeyAlgorithm.RSASign: RSAPub,
                             PubKeyAlgorithm.ECDSA: ECDSAPub,
                             PubKeyAlgorithm.EdDSA: EdDSAPub,
                             PubKeyAlgorithm.ECDH: ECDHPub}
    __opaque_keymaterial__ = OpaquePubKey

    @sdproperty
    def created(self):
        return self._created

    @created.register(datetime)
    def created_datetime(self, val):
        self._created = _utc(val)

    @created.register(int)
    def created_int(self, val):
        self._created = _utc(val)

    @created.register(bytes)
    @created.register(bytearray)
    def created_bin(self, val):
        self.created = self.bytes_to_int(val)

    @sdproperty
    def pkalg(self):
        return self._pkalg

    @pkalg.register(int)
    def pkalg_int(self, val):
        self._pkalg = PubKeyAlgorithm(val)

        _c = self.__keymaterial_algos__.get(self._pkalg, self.__opaque_keymaterial__)
        self.keymaterial = _c()

    @property
    def public(self):
        return not isinstance(self, Private)

    @property
    def fingerprint(self):
        # A V4 fingerprint is the 160-bit SHA-1 hash of the octet 0x99, followed by the two-octet
        # packet length, followed by the entire Public-Key packet starting with the version field.
        pubdata = self.pubdata()

        fp = HashAlgorithm.SHA1.hasher
        fp.update(b'\x99')
        fp.update(self.int_to_bytes(len(pubdata), 2))
        fp.update(pubdata)

        return Fingerprint(fp.finalize())

    def __init__(self):
        super().__init__()
        self.created = datetime.now(timezone.utc)
        self.pkalg = 0
        self.keymaterial = None

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += self.int_to_bytes(calendar.timegm(self.created.timetuple()), 4)
        _bytes += self.int_to_bytes(self.pkalg)
        _bytes += self.keymaterial.__bytearray__()
        return _bytes

    def pubdata(self):
        """the public portion of this key, as it is hashed for signatures: version onward"""
        _bytes = bytearray([self.header.version])
        _bytes += self.int_to_bytes(calendar.timegm(self.created.timetuple()), 4)
        _bytes += self.int_to_bytes(self.pkalg)
        _bytes += self.keymaterial.__pubbytearray__()
        return _bytes

    def parse(self, packet):
        super().parse(packet)

        self.created = packet[:4]
        del packet[:4]

        self.pkalg = packet[0]
        del packet[0]

        # bound keymaterial to the remaining length of the packet
        pend = self.header.length - 6
        self.keymaterial.parse(packet[:pend])
        del packet[:pend]


class PrivKeyV4(PrivKey, PubKeyV4):
    __ver__ = 4

    __keymaterial_algos__ = {PubKeyAlgorithm.RSAEncryptOrSign: RSAPriv,
                             PubKeyAlgorithm.RSAEncrypt: RSAPriv,
                             PubKeyAlgorithm.RSASign: RSAPriv,
                             PubKeyAlgorithm.ECDSA: ECDSAPriv,
                             PubKeyAlgorithm.EdDSA: EdDSAPriv,
                             PubKeyAlgorithm.ECDH: ECDHPriv}
    __opaque_keymaterial__ = OpaquePrivKey

    @classmethod
    def new(cls, key_algorithm: PubKeyAlgorithm, key_size: Optional[Union[int, EllipticCurveOID]],
            created: Optional[datetime] = None):
        # build a key packet
        pk = cls()
        pk.pkalg = key_algorithm
        if pk.keymaterial is None or isinstance(pk.keymaterial, OpaquePrivKey):
            raise NotImplementedError(key_algorithm)
        pk.keymaterial._generate(key_size)
        if created is not None:
            pk.created = created
        pk.update_hlen()
        return pk

    def pubkey(self):
        # return a public key packet carrying the same public material
        pk = PubSubKeyV4() if isinstance(self, PrivSubKey) else PubKeyV4()
        pk.created = self.created
        pk.pkalg = self.pkalg
        pk.keymaterial.parse(bytearray(self.keymaterial.__pubbytearray__()))
        pk.update_hlen()
        return pk

    @property
    def protected(self):
        return bool(self.keymaterial.s2k)

    @property
    def unlocked(self):
        if self.protected:
            return self.keymaterial.populated
        return True

    def protect(self, passphrase: bytes, enc_alg: SymmetricKeyAlgorithm, hash_alg: HashAlgorithm):
        self.keymaterial.encrypt_keyblob(passphrase, enc_alg, hash_alg)
        del passphrase
        self.update_hlen()

    def unprotect(self, passphrase: bytes):
        self.keymaterial.decrypt_keyblob(passphrase)
        del passphrase

    def sign(self, sigdata: bytes, hash_alg: HashAlgorithm, prehashed: bool = False) -> bytes:
        return self.keymaterial.sign(sigdata, hash_alg.algorithm, prehashed)

    def clear(self):
        # only protected material can be recovered after clearing
        if self.protected:
            self.keymaterial.clear()


class PrivSubKey(VersionedPacket, Sub, Private):
    __typeid__ = PacketType.SecretSubKey
    __ver__ = 0


class PrivSubKeyV4(PrivSubKey, PrivKeyV4):
    __ver__ = 4


class CompressedData(Packet):
    """
    5.6.  Compressed Data Packet (Tag 8)

    The body of this packet consists of a one-octet algorithm identifier, followed by compressed
    data that decompresses to a set of OpenPGP packets.
    """
    __typeid__ = PacketType.CompressedData

    @sdproperty
    def calg(self):
        return self._calg

    @calg.register(int)
    def calg_int(self, val):
        self._calg = CompressionAlgorithm(val)

    def __init__(self):
        super().__init__()
        self._calg = None
        self.packets = []

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += bytearray([self.calg])

        _pb = bytearray()
        for pkt in self.packets:
            _pb += pkt.__bytearray__()
        _bytes += self.calg.compress(bytes(_pb))

        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.calg = packet[0]
        del packet[0]

        cdata = bytearray(self.calg.decompress(packet[:self.header.length - 1]))
        del packet[:self.header.length - 1]

        while len(cdata) > 0:
            self.packets.append(Packet(cdata))


class SKEData(Packet):
    """
    5.7.  Symmetrically Encrypted Data Packet (Tag 9)

    Data encrypted with CFB resynchronization and no integrity protection. Written only when
    integrity protection is switched off.
    """
    __typeid__ = PacketType.SymmetricallyEncryptedData

    def __init__(self):
        super().__init__()
        self.ct = bytearray()

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += self.ct
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.ct = packet[:self.header.length]
        del packet[:self.header.length]

    def decrypt(self, key, alg):
        bs = alg.block_size // 8
        pt = _resync_cfb_decrypt(bytes(self.ct), key, alg)

        # the last two octets of the random prefix are repeated
        if pt[bs - 2:bs] != pt[bs:bs + 2]:
            raise PGPDecryptionError("Decryption failed")

        return pt[bs + 2:]


class LiteralData(Packet):
    """
    5.9.  Literal Data Packet (Tag 11)

    The body of this packet consists of:
     - A one-octet field that describes how the data is formatted.
     - File name as a string (one-octet length, followed by a file name).
     - A four-octet number that indicates a date associated with the literal data.
     - The remainder of the packet is literal data.
    """
    __typeid__ = PacketType.LiteralData

    @sdproperty
    def mtime(self):
        return self._mtime

    @mtime.register(datetime)
    def mtime_datetime(self, val):
        self._mtime = _utc(val)

    @mtime.register(int)
    def mtime_int(self, val):
        self._mtime = _utc(val)

    @mtime.register(bytes)
    @mtime.register(bytearray)
    def mtime_bin(self, val):
        self.mtime = self.bytes_to_int(val)

    def __init__(self):
        super().__init__()
        self.format = LiteralFormat.Binary
        self.filename = ''
        self.mtime = 0
        self._contents = bytearray()

    @property
    def contents(self):
        return self._contents

    @contents.setter
    def contents(self, val):
        self._contents = bytearray(val)

    def header_fields(self):
        """format, file name and date: the octets between the packet header and the data"""
        _bytes = bytearray()
        _bytes += self.format.value.encode('latin-1')
        fn = self.text_to_bytes(self.filename)
        _bytes.append(len(fn))
        _bytes += fn
        _bytes += self.int_to_bytes(calendar.timegm(self.mtime.timetuple()), 4)
        return _bytes

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += self.header_fields()
        _bytes += self._contents
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.format = LiteralFormat(chr(packet[0]))
        del packet[0]

        fnl = packet[0]
        del packet[0]

        self.filename = self.bytes_to_text(bytes(packet[:fnl]))
        del packet[:fnl]

        self.mtime = packet[:4]
        del packet[:4]

        dlen = self.header.length - (6 + fnl)
        self._contents = packet[:dlen]
        del packet[:dlen]


class UserID(Packet):
    """
    5.11.  User ID Packet (Tag 13)

    A User ID packet consists of UTF-8 text that is intended to represent the name and email address
    of the key holder. By convention, it includes an RFC 2822 mail name-addr.
    """
    __typeid__ = PacketType.UserID

    _uid_re = re.compile(r'^(?P<name>[^<(]*?)\s*(?:\((?P<comment>[^)]*)\))?\s*(?:<(?P<email>[^>]*)>)?$')

    def __init__(self):
        super().__init__()
        self.uid = ""

    @property
    def name(self):
        m = self._uid_re.match(self.uid)
        return m.group('name') if m else self.uid

    @property
    def comment(self):
        m = self._uid_re.match(self.uid)
        return (m.group('comment') or '') if m else ''

    @property
    def email(self):
        m = self._uid_re.match(self.uid)
        return (m.group('email') or '') if m else ''

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes += self.text_to_bytes(self.uid)
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.uid = self.bytes_to_text(bytes(packet[:self.header.length]))
        del packet[:self.header.length]


class PubSubKey(VersionedPacket, Sub, Public):
    __typeid__ = PacketType.PublicSubKey
    __ver__ = 0


class PubSubKeyV4(PubSubKey, PubKeyV4):
    __ver__ = 4


class IntegrityProtectedSKEData(VersionedPacket):
    __typeid__ = PacketType.SymmetricallyEncryptedIntegrityProtectedData
    __ver__ = 0


class IntegrityProtectedSKEDataV1(IntegrityProtectedSKEData):
    """
    5.13.  Sym. Encrypted Integrity Protected Data Packet (Tag 18)

    The body of this packet consists of a one-octet version number (1) followed by data encrypted
    in CFB mode with an all-zero IV. The plaintext is a random prefix of one block, the last two
    octets of that block repeated, the data, and a Modification Detection Code packet holding the
    SHA-1 hash of everything before its digest (including the MDC packet's own two header octets).
    """
    __ver__ = 1

    def __init__(self):
        super().__init__()
        self.ct = bytearray()

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += super().__bytearray__()
        _bytes += self.ct
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.ct = packet[:self.header.length - 1]
        del packet[:self.header.length - 1]

    def encrypt(self, key, alg, data):
        iv = alg.gen_iv()
        data = iv + iv[-2:] + data

        mdc = MDC()
        mdc.mdc = HashAlgorithm.SHA1.digest(bytes(data) + b'\xd3\x14')
        mdc.update_hlen()

        data += mdc.__bytearray__()
        self.ct = _cfb_encrypt(bytes(data), key, alg)
        self.update_hlen()

    def decrypt(self, key, alg):
        pt = _cfb_decrypt(bytes(self.ct), key, alg)

        # do the MDC checks
        _expected_mdcbytes = b'\xd3\x14' + HashAlgorithm.SHA1.digest(bytes(pt[:-20]))
        if not constant_time.bytes_eq(bytes(pt[-22:]), _expected_mdcbytes):
            raise PGPDecryptionError("Decryption failed")  # pragma: no cover

        iv = bytes(pt[:alg.block_size // 8])
        del pt[:alg.block_size // 8]

        ivl2 = bytes(pt[:2])
        del pt[:2]

        if not constant_time.bytes_eq(iv[-2:], ivl2):
            raise PGPDecryptionError("Decryption failed")  # pragma: no cover

        return pt[:-22]


class MDC(Packet):
    """
    5.14.  Modification Detection Code Packet (Tag 19)

    The body of this packet is a single SHA-1 hash of the preceding plaintext.
    """
    __typeid__ = PacketType.ModificationDetectionCode

    def __init__(self):
        super().__init__()
        self.mdc = b''

    def __bytearray__(self):
        return super().__bytearray__() + self.mdc

    def parse(self, packet):
        super().parse(packet)
        self.mdc = bytes(packet[:20])
        del packet[:20]
