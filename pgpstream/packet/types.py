""" types.py
"""

import abc
import copy

from typing import Iterator, Optional, Tuple, Type, Union

from ..constants import PacketType
from ..constants import PubKeyAlgorithm

from ..decorators import sdproperty

from ..types import DispatchGuidance
from ..types import Dispatchable
from ..types import Field
from ..types import Header as _Header

__all__ = ['Header',
           'VersionedHeader',
           'Packet',
           'VersionedPacket',
           'Opaque',
           'Key',
           'Public',
           'Private',
           'Primary',
           'Sub',
           'MPI',
           'MPIs', ]


class Header(_Header):
    @sdproperty
    def typeid(self) -> PacketType:
        return self._typeid

    @typeid.register
    def typeid_int(self, val: int) -> None:
        if isinstance(val, PacketType):
            self._typeid = val
            return

        self._typeid = PacketType((val & 0x3F) if self._lenfmt == 1 else ((val & 0x3C) >> 2))

    def __init__(self) -> None:
        super().__init__()
        self._typeid = PacketType.Invalid

    def __bytearray__(self) -> bytearray:
        # always emit new-format headers
        _bytes = bytearray([0xC0 | self._typeid])
        _bytes += self.encode_length(self.length)
        return _bytes

    def __len__(self) -> int:
        return 1 + self.llen

    def parse(self, packet: bytearray) -> None:
        """
        There are two header formats. Both start with a tag octet whose high bit is always set.

        old format: bit 6 clear, bits 5-2 hold the packet tag, and bits 1-0 select a 1, 2, or 4 octet
        length field (or no length field at all, meaning the packet runs to the end of the data).

        new format: bit 6 set, bits 5-0 hold the packet tag, and a one, two, five octet, or partial
        body length follows.

        :param packet: raw packet bytes
        """
        if not packet[0] & 0x80:
            raise ValueError("Malformed packet tag: 0x{:02x}".format(packet[0]))

        self._lenfmt = 1 if packet[0] & 0x40 else 0
        self.typeid = packet[0]
        if not self._lenfmt:
            self._llen = {0: 1, 1: 2, 2: 4, 3: 0}[packet[0] & 0x03]
        del packet[0]

        self.length = packet


class VersionedHeader(Header):
    @sdproperty
    def version(self) -> int:
        return self._version

    @version.register
    def version_int(self, val: int) -> None:
        self._version = val

    def __init__(self) -> None:
        super().__init__()
        self.version = 0

    def __bytearray__(self) -> bytearray:
        _bytes = super().__bytearray__()
        _bytes.append(self.version)
        return _bytes

    @classmethod
    def promote(cls, header: Header, packet: bytearray) -> 'VersionedHeader':
        """Upgrade a plain header produced while dispatching, consuming the version octet."""
        nh = cls()
        nh.__dict__.update(header.__dict__)
        nh.version = packet[0]
        del packet[0]
        return nh


class Packet(Dispatchable):
    __typeid__: Optional[Union[PacketType, DispatchGuidance]] = None
    __headercls__: Type[Header] = Header

    def __init__(self) -> None:
        super().__init__()
        self.header = self.__headercls__()
        if isinstance(self.__typeid__, int) and self.__typeid__ > 0:
            self.header.typeid = self.__typeid__

    @abc.abstractmethod
    def __bytearray__(self) -> bytearray:
        return self.header.__bytearray__()

    def __len__(self) -> int:
        return len(self.header) + self.header.length

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__} [type {self.header.typeid:02}] at 0x{id(self):x}>'

    def update_hlen(self) -> None:
        self.header.length = len(self.__bytearray__()) - len(self.header)

    @abc.abstractmethod
    def parse(self, packet: bytearray) -> None:
        if self.header.typeid is PacketType.Invalid:
            self.header.parse(packet)


class VersionedPacket(Packet):
    __typeid__: Union[PacketType, DispatchGuidance] = DispatchGuidance.NoDispatch
    __headercls__ = VersionedHeader

    def __init__(self) -> None:
        super().__init__()
        if isinstance(self.__ver__, int):
            self.header.version = self.__ver__

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} [type {self.header.typeid:02}][v{self.header.version}] at 0x{id(self):x}>"

    def parse(self, packet: bytearray) -> None:
        super().parse(packet)
        if not isinstance(self.header, VersionedHeader):
            self.header = VersionedHeader.promote(self.header, packet)


class Opaque(Packet):
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
        self.payload = packet[:self.header.length]
        del packet[:self.header.length]


# key marker classes for convenience
class Key:
    @abc.abstractproperty
    def pkalg(self) -> PubKeyAlgorithm:
        """The public key algorithm of the key"""


class Public(Key):
    pass


class Private(Key):
    @abc.abstractmethod
    def pubkey(self) -> Public:
        """return a public key packet carrying this key's public half"""

    @abc.abstractproperty
    def protected(self) -> bool:
        """Whether the secret key material is protected by a passphrase"""

    @abc.abstractproperty
    def unlocked(self) -> bool:
        """Whether the secret key material is available for use"""


class Primary(Key):
    pass


class Sub(Key):
    pass


class MPI(int):
    def __new__(cls, num):
        mpi = num

        if isinstance(num, (bytes, bytearray)):
            if isinstance(num, bytes):  # pragma: no cover
                num = bytearray(num)

            fl = ((MPIs.bytes_to_int(num[:2]) + 7) // 8)
            del num[:2]

            mpi = MPIs.bytes_to_int(num[:fl])
            del num[:fl]

        return super().__new__(cls, mpi)

    def byte_length(self) -> int:
        return ((self.bit_length() + 7) // 8)

    def to_mpibytes(self) -> bytes:
        return MPIs.int_to_bytes(self.bit_length(), 2) + MPIs.int_to_bytes(self, self.byte_length())

    def __len__(self) -> int:
        return self.byte_length() + 2


class MPIs(Field):
    # subclasses hold and parse several MPI fields
    __mpis__: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return sum(len(i) for i in self)

    def __iter__(self) -> Iterator[MPI]:
        """yield all components of an MPI so it can be iterated over"""
        for i in self.__mpis__:
            yield getattr(self, i)

    def __copy__(self) -> 'MPIs':
        pk = self.__class__()
        for m in self.__mpis__:
            setattr(pk, m, copy.copy(getattr(self, m)))

        return pk
