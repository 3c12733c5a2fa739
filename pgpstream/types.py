""" types.py
"""

import abc
import base64
import binascii
import collections
import re
import warnings

from enum import IntEnum

from typing import Dict, Optional, Set, Tuple, Type, Union

from .decorators import sdproperty

from .errors import PGPError

__all__ = ['Armorable',
           'PGPObject',
           'Field',
           'Fingerprint',
           'Header',
           'KeyID',
           'MetaDispatchable',
           'Dispatchable',
           'DispatchGuidance',
           'SignatureVerification']


def _crc24_table():
    table = []
    for i in range(256):
        crc = i << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= 0x1864CFB
        table.append(crc & 0xFFFFFF)
    return tuple(table)


class Armorable(metaclass=abc.ABCMeta):
    CRC24_INIT = 0x0B704CE
    __crc24_table = _crc24_table()

    __armor_fmt = '-----BEGIN PGP {block_type}-----\n' \
                  '{headers}\n' \
                  '{packet}\n' \
                  '={crc}\n' \
                  '-----END PGP {block_type}-----\n'

    # the re.VERBOSE flag allows for:
    #  - whitespace is ignored except when in a character class or escaped
    #  - anything after a '#' that is not escaped or in a character class is ignored, allowing for comments
    __armor_regex = re.compile(r"""# armor header line; capture the variable part of the magic text
                         ^-{5}BEGIN\ PGP\ (?P<magic>[A-Z0-9 ,]+)-{5}(?:\r?\n)
                         # try to capture all the headers into one capture group
                         # if this doesn't match, m['headers'] will be None
                         (?P<headers>(^.+:\ .+(?:\r?\n))+)?(?:\r?\n)?
                         # capture all lines of the body, up to 76 characters long,
                         # including the newline, and the pad character(s)
                         (?P<body>([A-Za-z0-9+/]{1,76}={,2}(?:\r?\n))*)
                         # capture the armored CRC24 value
                         ^=(?P<crc>[A-Za-z0-9+/]{4})(?:\r?\n)
                         # finally, capture the armor tail line, which must match the armor header line
                         ^-{5}END\ PGP\ (?P=magic)-{5}(?:\r?\n)?
                         """, flags=re.MULTILINE | re.VERBOSE)

    @staticmethod
    def is_armor(text: Union[str, bytes, bytearray]) -> bool:
        """
        Whether the ``text`` provided is an ASCII-armored PGP block.

        :param text: A possible ASCII-armored PGP block.
        :returns: Whether the text is ASCII-armored.
        """
        if isinstance(text, (bytes, bytearray)):
            try:
                text = text.decode('utf-8')
            except UnicodeDecodeError:
                return False

        return Armorable.__armor_regex.search(text) is not None

    @staticmethod
    def ascii_unarmor(text: Union[str, bytes, bytearray]) -> Dict[str, Optional[object]]:
        """
        Takes an ASCII-armored PGP block and returns the decoded byte value.
        Binary input that is not armored is passed through untouched in ``body``.

        :param text: An ASCII-armored PGP block, to un-armor.
        :raises: :py:exc:`ValueError` if ``text`` did not contain an ASCII-armored PGP block.
        :raises: :py:exc:`~pgpstream.errors.PGPError` if the armored CRC24 does not match the body.
        :returns: A ``dict`` with the keys ``magic``, ``headers``, ``body``, ``crc``.
        """
        if isinstance(text, (bytes, bytearray)):
            if not Armorable.is_armor(text):
                return {'magic': None, 'headers': None, 'body': bytearray(text), 'crc': None}
            text = text.decode('latin-1')

        matcher = Armorable.__armor_regex.search(text)

        if matcher is None:
            raise ValueError("Expected: ASCII-armored PGP data")

        m = matcher.groupdict()

        if m['headers'] is not None:
            m['headers'] = collections.OrderedDict(re.findall('^(?P<key>.+): (?P<value>.+)$\n?', m['headers'], flags=re.MULTILINE))

        try:
            m['body'] = bytearray(base64.b64decode(m['body'].encode()))

        except (binascii.Error, TypeError) as ex:
            raise PGPError(str(ex)) from ex

        m['crc'] = PGPObject.bytes_to_int(base64.b64decode(m['crc'].encode()))
        if Armorable.crc24(m['body']) != m['crc']:
            raise PGPError("Armor checksum mismatch")

        return m

    @staticmethod
    def crc24(data, crc=None):
        """
        CRC24 as described in the RFC 4880 section on Radix-64 Conversions: generator 0x864CFB,
        initialized with 0xB704CE, computed over the data before it is converted to radix-64.
        Pass the previous return value as ``crc`` to continue a running checksum.
        """
        if crc is None:
            crc = Armorable.CRC24_INIT

        table = Armorable.__crc24_table
        for b in data:
            crc = ((crc << 8) & 0xFFFFFF) ^ table[((crc >> 16) ^ b) & 0xFF]

        return crc & 0xFFFFFF

    @staticmethod
    def armor_crc(crc: int) -> str:
        return base64.b64encode(PGPObject.int_to_bytes(crc, 3)).decode('latin-1')

    @abc.abstractproperty
    def magic(self):
        """The magic string identifier for the current PGP type"""

    @classmethod
    def from_blob(cls, blob):
        obj = cls()
        if not isinstance(blob, (bytes, bytearray)):
            po = obj.parse(bytearray(blob, 'latin-1'))

        else:
            po = obj.parse(bytearray(blob))

        if po is not None:
            return (obj, po)

        return obj

    def __init__(self):
        super().__init__()
        self.ascii_headers = collections.OrderedDict()

    def __str__(self):
        data = self.__bytes__()
        payload = base64.b64encode(data).decode('latin-1')
        payload = '\n'.join(payload[i:(i + 64)] for i in range(0, len(payload), 64))

        return self.__armor_fmt.format(
            block_type=self.magic,
            headers=''.join('{key}: {val}\n'.format(key=key, val=val) for key, val in self.ascii_headers.items()),
            packet=payload,
            crc=self.armor_crc(self.crc24(data))
        )


class PGPObject(metaclass=abc.ABCMeta):

    @staticmethod
    def int_byte_len(i):
        return (i.bit_length() + 7) // 8

    @staticmethod
    def bytes_to_int(b, order='big'):
        """convert bytes to integer"""
        return int.from_bytes(b, order)

    @staticmethod
    def int_to_bytes(i, minlen=1, order='big'):
        """convert integer to bytes"""
        blen = max(minlen, PGPObject.int_byte_len(i), 1)

        return i.to_bytes(blen, order)

    @staticmethod
    def text_to_bytes(text):
        if text is None:
            return text

        if isinstance(text, (bytearray, bytes)):
            return text

        return text.encode('utf-8')

    @staticmethod
    def bytes_to_text(text):
        if text is None or isinstance(text, str):
            return text

        return text.decode('utf-8')

    @abc.abstractmethod
    def parse(self, packet):
        """consume this object's serialized form from the front of ``packet``"""

    @abc.abstractmethod
    def __bytearray__(self):
        """
        Returns the contents of concrete subclasses in a binary format that can be understood by other OpenPGP
        implementations
        """

    def __bytes__(self):
        return bytes(self.__bytearray__())


class Field(PGPObject):
    @abc.abstractmethod
    def __len__(self):
        """Return the length of the output of __bytes__"""


class Header(Field):
    @staticmethod
    def encode_length(length):
        """Encode ``length`` as a new-format (one, two, or five octet) body length."""
        if 192 > length:
            return Header.int_to_bytes(length)

        elif 8384 > length:
            elen = ((length & 0xFF00) + (192 << 8)) + ((length & 0xFF) - 192)
            return Header.int_to_bytes(elen, 2)

        return b'\xFF' + Header.int_to_bytes(length, 4)

    @staticmethod
    def encode_partial_length(exponent):
        """Encode a partial body length of ``2 ** exponent`` octets."""
        if not 0 <= exponent <= 30:
            raise ValueError("partial body lengths must be between 1 and 2**30 octets")
        return bytes([0xE0 | exponent])

    @sdproperty
    def length(self):
        return self._len

    @length.register(int)
    def length_int(self, val):
        self._len = val

    @length.register(bytes)
    @length.register(bytearray)
    def length_bin(self, val):
        def _parse_len(a, offset=0):
            # returns (the parsed length, size of length field, whether the length was of partial type)
            fo = a[offset]

            if 192 > fo:
                return (fo, 1, False)

            elif 224 > fo:
                dlen = self.bytes_to_int(a[offset:offset + 2])
                return (((dlen - (192 << 8)) & 0xFF00) + ((dlen & 0xFF) + 192), 2, False)

            elif 255 > fo:
                return (1 << (fo & 0x1f), 1, True)

            return (self.bytes_to_int(a[offset + 1:offset + 5]), 5, False)

        def _new_len(b):
            part_len, size, partial = _parse_len(b)
            del b[:size]

            # partial body lengths are stitched back together in place, so the body that follows
            # the header is contiguous once parsing is done
            total = part_len
            while partial:
                part_len, size, partial = _parse_len(b, total)
                del b[total:total + size]
                total += part_len
            self._len = total

        def _old_len(b):
            if self._llen > 0:
                self._len = self.bytes_to_int(b[:self._llen])
                del b[:self._llen]

            else:
                # indeterminate length: the packet runs to the end of the data
                self._len = len(b)

        _new_len(val) if self._lenfmt == 1 else _old_len(val)

    @property
    def llen(self):
        if self._lenfmt == 1:
            if 192 > self.length:
                return 1

            elif 8384 > self.length:
                return 2

            return 5

        return self._llen

    def __init__(self):
        super().__init__()
        self._len = 1
        self._llen = 1
        self._lenfmt = 1


class DispatchGuidance(IntEnum):
    "Identify classes that should be left alone by the parsing dispatcher"
    NoDispatch = -1


class MetaDispatchable(abc.ABCMeta):
    """
    Registry for classes that can be built from a serialized packet.

    A root class has ``__typeid__ = None`` and is the entry point for parsing: calling
    ``Root(data)`` reads a header off the front of ``data`` and instantiates whichever
    registered subclass handles that type (and, for versioned types, that version).

    Registry keys:
     - ``(Root, None)``: the opaque fallback for a root
     - ``(Root, typeid)``: the handler for a type
     - ``(Root, typeid, ver)``: the handler for one version of a versioned type; the unversioned
       entry for such a type has ``__ver__ = 0``
    """

    _roots: Set[Type] = set()
    _registry: Dict[Tuple, Type] = {}

    def __new__(mcs, name, bases, attrs):  # NOQA
        ncls = super().__new__(mcs, name, bases, attrs)

        if ncls.__typeid__ is DispatchGuidance.NoDispatch:
            return ncls

        roots = tuple(MetaDispatchable._roots)
        if ncls.__typeid__ is None and not (roots and issubclass(ncls, roots)):
            MetaDispatchable._roots.add(ncls)

        elif roots and issubclass(ncls, roots):
            for rcls in (root for root in roots if issubclass(ncls, root)):
                MetaDispatchable._registry.setdefault((rcls, ncls.__typeid__), ncls)

                if ncls.__ver__:
                    MetaDispatchable._registry.setdefault((rcls, ncls.__typeid__, ncls.__ver__), ncls)

        return ncls

    def __call__(cls, packet=None):  # NOQA
        def _makeobj(cls):
            obj = object.__new__(cls)
            obj.__init__()
            return obj

        if packet is None:
            return _makeobj(cls)

        rcls = cls if cls in MetaDispatchable._roots else next(root for root in MetaDispatchable._roots if issubclass(cls, root))

        header = rcls.__headercls__()
        header.parse(packet)

        ncls = MetaDispatchable._registry.get((rcls, header.typeid), None)
        if ncls is not None and ncls.__ver__ == 0:
            # versioned packets: the version octet follows the header
            ncls = MetaDispatchable._registry.get((rcls, header.typeid, packet[0]), None)

        if ncls is None:
            ncls = MetaDispatchable._registry[(rcls, None)]

        obj = _makeobj(ncls)
        obj.header = header

        try:
            obj.parse(packet)

        except PGPError:
            raise

        except Exception as ex:
            raise PGPError(str(ex)) from ex

        return obj


class Dispatchable(PGPObject, metaclass=MetaDispatchable):
    __typeid__: Optional[IntEnum] = DispatchGuidance.NoDispatch

    @abc.abstractproperty
    def __headercls__(self):  # pragma: no cover
        return False

    __ver__: Optional[int] = None


class SignatureVerification:
    __slots__ = ("_subjects",)
    sigsubj = collections.namedtuple('sigsubj', ['verified', 'by', 'signature', 'subject'])

    @property
    def good_signatures(self):
        """
        A generator yielding namedtuples of all signatures that were successfully verified
        in the operation that returned this instance. The namedtuple has the following attributes:

        ``sigsubj.verified`` - ``bool`` of whether the signature verified successfully or not.

        ``sigsubj.by`` - the :py:obj:`~pgpstream.pgp.PGPKey` that was used in this verify operation.

        ``sigsubj.signature`` - the :py:obj:`~pgpstream.pgp.PGPSignature` that was verified.

        ``sigsubj.subject`` - the subject that was verified using the signature.
        """
        yield from (sigsub for sigsub in self._subjects if sigsub.verified)

    @property
    def bad_signatures(self):
        """The counterpart of :py:attr:`good_signatures`."""
        yield from (sigsub for sigsub in self._subjects if not sigsub.verified)

    def __init__(self):
        """
        Returned by :py:meth:`.PGPKey.verify`

        Can be compared directly as a boolean to determine whether or not the specified signature verified.
        """
        super().__init__()
        self._subjects = []

    def __len__(self):
        return len(self._subjects)

    def __bool__(self):
        return len(self._subjects) > 0 and all(sigsub.verified for sigsub in self._subjects)

    def __and__(self, other):
        if not isinstance(other, SignatureVerification):
            raise TypeError(type(other))

        self._subjects += other._subjects
        return self

    def __repr__(self):
        return '<{classname}({val})>'.format(
            classname=self.__class__.__name__,
            val=bool(self)
        )

    def add_sigsubj(self, signature, by, subject=None, verified=False):
        self._subjects.append(self.sigsubj(verified, by, signature, subject))


class KeyID(str):
    '''
    An 8-octet key ID, as used on the wire in v3 PKESK, v3 One-Pass Signature, and Issuer subpackets.
    Represented as 16 uppercase hex digits.
    '''
    def __new__(cls, content: Union[str, bytes, bytearray]) -> "KeyID":
        if isinstance(content, str):
            if not re.match(r'^[0-9A-F]{16}$', content):
                raise ValueError(f'Initializing a KeyID from a string requires it to be 16 uppercase hex digits, not "{content}"')
            return str.__new__(cls, content)
        elif isinstance(content, (bytes, bytearray)):
            if len(content) != 8:
                raise ValueError(f'Initializing a KeyID from a bytes or bytearray requires exactly 8 bytes, not {content!r}')
            return str.__new__(cls, binascii.b2a_hex(content).decode('latin1').upper())
        raise TypeError(f'cannot initialize a KeyID from {type(content)}')

    @classmethod
    def parse(cls, b: bytearray) -> "KeyID":
        'read a Key ID off the wire and consume the 8 octets that represent it'
        ret = cls(bytes(b[:8]))
        del b[:8]
        return ret

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Fingerprint):
            return str(self) == str(other.keyid)
        if isinstance(other, str):
            return str(self) == other.upper()
        if isinstance(other, (bytes, bytearray)):
            return bytes(self) == bytes(other)
        return False

    def __ne__(self, other: object) -> bool:
        return not (self == other)

    def __hash__(self) -> int:
        return hash(str(self))

    def __bytes__(self) -> bytes:
        return binascii.a2b_hex(self)

    def __repr__(self) -> str:
        return f"KeyID({self})"


class Fingerprint(str):
    """
    A subclass of ``str``. Can be compared using == and != to ``str``, :py:obj:`KeyID`, and other :py:obj:`Fingerprint` instances.

    Ignores spaces when comparing and hashing.
    """
    @property
    def keyid(self) -> KeyID:
        return KeyID(str(self)[-16:])

    def __new__(cls, content: Union[str, bytes, bytearray]) -> "Fingerprint":
        if isinstance(content, Fingerprint):
            return content

        if isinstance(content, (bytes, bytearray)):
            if len(content) != 20:
                raise ValueError(f'binary Fingerprint must be 20 bytes, not {len(content)}')
            content = binascii.b2a_hex(content).decode('latin-1')

        content = content.upper().replace(' ', '')
        if not re.match(r'^[0-9A-F]{40}$', content):
            raise ValueError('Fingerprint must be a string of 40 hex digits')
        return str.__new__(cls, content)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, KeyID):
            return self.keyid == other

        if isinstance(other, (str, bytes, bytearray)):
            if isinstance(other, (bytes, bytearray)):
                other = other.decode('latin-1')

            other = other.replace(' ', '').upper()
            return str(self) == other or str(self.keyid) == other

        return False

    def __ne__(self, other: object) -> bool:
        return not (self == other)

    def __hash__(self) -> int:
        return hash(str(self))

    def __bytes__(self) -> bytes:
        return binascii.a2b_hex(self.encode("latin-1"))

    def __wireformat__(self) -> bytes:
        # IssuerFingerprint subpackets carry the key version first
        return b'\x04' + bytes(self)

    def __pretty__(self) -> str:
        halves = [[self[i:i + 4] for i in range(j, j + 20, 4)] for j in (0, 20)]
        return '  '.join(' '.join(c) for c in halves)

    def __repr__(self) -> str:
        return self.__class__.__name__ + '(' + repr(self.__pretty__()) + ')'
