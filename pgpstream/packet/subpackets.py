""" subpackets.py

Signature SubPackets
"""
import abc
import calendar

from datetime import datetime
from datetime import timezone

from ..constants import CompressionAlgorithm
from ..constants import Features as _Features
from ..constants import HashAlgorithm
from ..constants import KeyFlags as _KeyFlags
from ..constants import KeyServerPreferences as _KeyServerPreferences
from ..constants import PacketType
from ..constants import SigSubpacketType
from ..constants import SymmetricKeyAlgorithm

from ..decorators import sdproperty

from ..types import Dispatchable
from ..types import Fingerprint
from ..types import Header as _Header
from ..types import KeyID

from .types import VersionedHeader

__all__ = ['Header',
           'EmbeddedSignatureHeader',
           'SubPacket',
           'Signature',
           'Opaque',
           'FlagList',
           'ByteFlag',
           'CreationTime',
           'PreferredSymmetricAlgorithms',
           'Issuer',
           'PreferredHashAlgorithms',
           'PreferredCompressionAlgorithms',
           'KeyServerPreferences',
           'PrimaryUserID',
           'KeyFlags',
           'SignersUserID',
           'Features',
           'EmbeddedSignature',
           'IssuerFingerprint']


class Header(_Header):
    @sdproperty
    def critical(self) -> bool:
        return self._critical

    @critical.register
    def critical_bool(self, val: bool) -> None:
        self._critical = val

    @sdproperty
    def typeid(self) -> int:
        return self._typeid

    @typeid.register
    def typeid_int(self, val: int) -> None:
        self._typeid = val & 0x7f

    @typeid.register(bytes)
    @typeid.register(bytearray)
    def typeid_bin(self, val) -> None:
        v = self.bytes_to_int(val)
        self.typeid = v
        self.critical = bool(v & 0x80)

    def __init__(self) -> None:
        super().__init__()
        self._typeid = -1
        self.critical = False

    def parse(self, packet: bytearray) -> None:
        self.length = packet

        self.typeid = packet[:1]
        del packet[:1]

    def __len__(self) -> int:
        return self.llen + 1

    def __bytearray__(self) -> bytearray:
        # the subpacket length counts the type octet
        _bytes = bytearray(self.encode_length(self.length))
        _bytes += self.int_to_bytes((int(self.critical) << 7) + self.typeid)
        return _bytes


class EmbeddedSignatureHeader(VersionedHeader):
    # an embedded signature is a bare Signature packet body: no tag or length, just the version
    def __init__(self) -> None:
        super().__init__()
        self.typeid = PacketType.Signature

    def __bytearray__(self) -> bytearray:
        return bytearray([self.version])

    def __len__(self) -> int:
        return 0


class SubPacket(Dispatchable):
    __headercls__ = Header

    def __init__(self) -> None:
        super().__init__()
        self.header = Header()

        if self.header.typeid == -1 and self.__typeid__ is not None:
            self.header.typeid = self.__typeid__

    def __bytearray__(self) -> bytearray:
        return self.header.__bytearray__()

    def __len__(self) -> int:
        return (self.header.llen + self.header.length)

    def __repr__(self) -> str:
        return "<{} [0x{:02x}] {}at 0x{:x}>".format(self.__class__.__name__, self.header.typeid, 'critical! ' if self.header.critical else '', id(self))

    def update_hlen(self) -> None:
        self.header.length = (len(self.__bytearray__()) - len(self.header)) + 1

    @abc.abstractmethod
    def parse(self, packet: bytearray) -> None:
        if self.header._typeid == -1:
            self.header.parse(packet)


class Signature(SubPacket):
    __typeid__ = None


class Opaque(Signature):
    __typeid__ = None

    def __init__(self) -> None:
        super().__init__()
        self.payload = bytearray()

    def __bytearray__(self) -> bytearray:
        _bytes = super().__bytearray__()
        _bytes += self.payload
        return _bytes

    def parse(self, packet: bytearray) -> None:
        super().parse(packet)
        self.payload = packet[:(self.header.length - 1)]
        del packet[:(self.header.length - 1)]


class FlagList(Signature):
    # an ordered list of algorithm preferences, one octet each
    __flags__ = None

    @sdproperty
    def flags(self):
        return self._flags

    @flags.register(list)
    @flags.register(tuple)
    def flags_list(self, val):
        self._flags = [self.__flags__(v) for v in val]

    @flags.register(bytearray)
    def flags_bytearray(self, val):
        self._flags = [self.__flags__(v) for v in val]

    def __init__(self):
        super().__init__()
        self.flags = []

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes += bytes(int(b) for b in self.flags)
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.flags = packet[:self.header.length - 1]
        del packet[:self.header.length - 1]


class ByteFlag(Signature):
    # a set of bit flags; only the first octet is interpreted, trailing octets are kept as-is
    __flags__ = None

    @sdproperty
    def flags(self):
        return self._flags

    @flags.register(set)
    @flags.register(frozenset)
    @flags.register(list)
    @flags.register(tuple)
    def flags_seq(self, val):
        self._flags = {self.__flags__(v) for v in val}

    @flags.register(int)
    def flags_int(self, val):
        self._flags = {f for f in self.__flags__ if f & val}

    def __init__(self):
        super().__init__()
        self._flags = set()
        self._trailing = bytearray()

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes.append(sum(int(f) for f in self.flags) & 0xFF)
        _bytes += self._trailing
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        body = packet[:self.header.length - 1]
        del packet[:self.header.length - 1]
        self.flags = body[0] if body else 0
        self._trailing = body[1:]


class CreationTime(Signature):
    """
    5.2.3.4.  Signature Creation Time

    (4-octet time field)

    The time the signature was made.

    MUST be present in the hashed area.
    """
    __typeid__ = SigSubpacketType.CreationTime

    @sdproperty
    def created(self):
        return self._created

    @created.register(datetime)
    def created_datetime(self, val):
        self._created = val if val.tzinfo is not None else val.replace(tzinfo=timezone.utc)

    @created.register(int)
    def created_int(self, val):
        self.created = datetime.fromtimestamp(val, timezone.utc)

    @created.register(bytearray)
    def created_bytearray(self, val):
        self.created = self.bytes_to_int(val)

    def __init__(self):
        super().__init__()
        self.created = datetime.now(timezone.utc)

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes += self.int_to_bytes(calendar.timegm(self.created.utctimetuple()), 4)
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.created = packet[:4]
        del packet[:4]


class PreferredSymmetricAlgorithms(FlagList):
    __typeid__ = SigSubpacketType.PreferredSymmetricAlgorithms
    __flags__ = SymmetricKeyAlgorithm


class Issuer(Signature):
    __typeid__ = SigSubpacketType.IssuerKeyID

    @sdproperty
    def issuer(self):
        return self._issuer

    @issuer.register(str)
    def issuer_str(self, val):
        self._issuer = KeyID(val)

    @issuer.register(bytes)
    @issuer.register(bytearray)
    def issuer_bytearray(self, val):
        self._issuer = KeyID(bytes(val))

    def __init__(self):
        super().__init__()
        self._issuer = KeyID(bytes(8))

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes += bytes(self._issuer)
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.issuer = packet[:8]
        del packet[:8]


class PreferredHashAlgorithms(FlagList):
    __typeid__ = SigSubpacketType.PreferredHashAlgorithms
    __flags__ = HashAlgorithm


class PreferredCompressionAlgorithms(FlagList):
    __typeid__ = SigSubpacketType.PreferredCompressionAlgorithms
    __flags__ = CompressionAlgorithm


class KeyServerPreferences(ByteFlag):
    __typeid__ = SigSubpacketType.KeyServerPreferences
    __flags__ = _KeyServerPreferences


class PrimaryUserID(Signature):
    __typeid__ = SigSubpacketType.PrimaryUserID

    @sdproperty
    def primary(self):
        return self._primary

    @primary.register(bool)
    def primary_bool(self, val):
        self._primary = val

    @primary.register(bytearray)
    def primary_bytearray(self, val):
        self.primary = bool(self.bytes_to_int(val))

    def __init__(self):
        super().__init__()
        self.primary = True

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes += self.int_to_bytes(int(self.primary))
        return _bytes

    def __bool__(self):
        return self.primary

    def parse(self, packet):
        super().parse(packet)
        self.primary = packet[:1]
        del packet[:1]


class KeyFlags(ByteFlag):
    __typeid__ = SigSubpacketType.KeyFlags
    __flags__ = _KeyFlags


class SignersUserID(Signature):
    """
    5.2.3.22.  Signer's User ID

    (String)

    The User ID of the key that made the signature, as a hint for the verifier.
    """
    __typeid__ = SigSubpacketType.SignersUserID

    @sdproperty
    def userid(self):
        return self._userid

    @userid.register(str)
    def userid_str(self, val):
        self._userid = val

    @userid.register(bytes)
    @userid.register(bytearray)
    def userid_bytearray(self, val):
        self.userid = bytes(val).decode('utf-8', errors='replace')

    def __init__(self):
        super().__init__()
        self.userid = ""

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes += self.userid.encode('utf-8')
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.userid = packet[:(self.header.length - 1)]
        del packet[:(self.header.length - 1)]


class Features(ByteFlag):
    __typeid__ = SigSubpacketType.Features
    __flags__ = _Features


class EmbeddedSignature(Signature):
    """
    5.2.3.26.  Embedded Signature

    (1 signature packet body)

    A complete Signature packet body. Used to carry the primary key binding signature made by a
    signing-capable subkey inside that subkey's binding signature.
    """
    __typeid__ = SigSubpacketType.EmbeddedSignature

    @property
    def _sig(self):
        return self._sigpkt

    @_sig.setter
    def _sig(self, val):
        esh = EmbeddedSignatureHeader()
        esh.version = val.header.version
        val.header = esh
        val.update_hlen()
        self._sigpkt = val

    @property
    def sigtype(self):
        return self._sig.sigtype

    @property
    def pubalg(self):
        return self._sig.pubalg

    @property
    def halg(self):
        return self._sig.halg

    @property
    def subpackets(self):
        return self._sig.subpackets

    @property
    def signer(self):
        return self._sig.signer

    def __init__(self):
        super().__init__()
        from .packets import SignatureV4
        self._sigpkt = SignatureV4()
        self._sigpkt.header = EmbeddedSignatureHeader()

    def __bytearray__(self):
        return super().__bytearray__() + self._sigpkt.__bytearray__()

    def parse(self, packet):
        super().parse(packet)
        body = packet[:(self.header.length - 1)]
        del packet[:(self.header.length - 1)]

        self._sigpkt.header.version = body[0]
        del body[0]
        self._sigpkt.header.length = len(body) + 1
        self._sigpkt.parse(body)


class IssuerFingerprint(Signature):
    '''
    5.2.3.28.  Issuer Fingerprint

    (1 octet key version number, N octets of fingerprint)

    The OpenPGP Key fingerprint of the key issuing the signature.
    '''
    __typeid__ = SigSubpacketType.IssuerFingerprint

    @sdproperty
    def issuer_fingerprint(self):
        return self._issuer_fpr

    @issuer_fingerprint.register(str)
    def issuer_fingerprint_str(self, val):
        self._issuer_fpr = Fingerprint(val)

    @issuer_fingerprint.register(bytes)
    @issuer_fingerprint.register(bytearray)
    def issuer_fingerprint_bytearray(self, val):
        self._issuer_fpr = Fingerprint(bytes(val))

    def __init__(self):
        super().__init__()
        self.version = 4
        self._issuer_fpr = None

    def __bytearray__(self):
        _bytes = super().__bytearray__()
        _bytes.append(self.version)
        _bytes += bytes(self.issuer_fingerprint)
        return _bytes

    def parse(self, packet):
        super().parse(packet)
        self.version = packet[0]
        del packet[0]

        fpr_len = self.header.length - 2
        self.issuer_fingerprint = packet[:fpr_len]
        del packet[:fpr_len]
