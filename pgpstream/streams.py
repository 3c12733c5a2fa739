""" streams.py

Incremental writers for the layers of an OpenPGP message. Each writer wraps a sink with a
``write`` method (a file object, or another writer), so the layers nest::

    with ArmorWriter(out) as armored:
        with EncryptedDataWriter(armored, key, alg) as encrypted:
            with CompressedDataWriter(encrypted, CompressionAlgorithm.ZLIB) as compressed:
                ...

Closing a writer finalizes its layer but never closes the sink it wraps. A writer left through an
exception is abandoned instead: nothing more is written, so the original exception surfaces unchanged.
"""
import base64
import collections

from datetime import datetime
from datetime import timezone

from .constants import CompressionAlgorithm
from .constants import HashAlgorithm
from .constants import LiteralFormat
from .constants import PacketType
from .constants import SymmetricKeyAlgorithm

from .packet import LiteralData
from .packet import MDC

from .symenc import _cfb_encrypt
from .symenc import _cfb_encryptor

from .types import Armorable
from .types import Header

__all__ = ['StreamWriter',
           'ArmorWriter',
           'PacketWriter',
           'EncryptedDataWriter',
           'CompressedDataWriter',
           'LiteralDataWriter',
           'DEFAULT_CHUNK_SIZE']

DEFAULT_CHUNK_SIZE = 1 << 16


class StreamWriter(object):
    def __init__(self, sink):
        super().__init__()
        self._sink = sink
        self._closed = False
        self._abandoned = False

    @property
    def closed(self):
        return self._closed or self._abandoned

    @property
    def abandoned(self):
        return self._abandoned

    def write(self, data):
        if self.closed:
            raise ValueError("write to a closed {}".format(self.__class__.__name__))

        if len(data):
            self._write(bytes(data))
        return len(data)

    def close(self):
        if self.closed:
            return

        try:
            self._finish()

        finally:
            self._closed = True

    def abandon(self):
        self._abandoned = True

    def _write(self, data):
        raise NotImplementedError()

    def _finish(self):
        raise NotImplementedError()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            self.close()

        else:
            self.abandon()

        return False


class ArmorWriter(StreamWriter):
    """
    ASCII armor written as data arrives: base64 in lines of 64 characters, with the CRC24
    checksum kept running over the binary data and written in the footer on close.
    """
    # 48 octets of input encode to exactly one 64-character line
    _line_octets = 48

    def __init__(self, sink, block_type="MESSAGE", headers=None):
        super().__init__(sink)
        self.block_type = block_type
        self.headers = collections.OrderedDict(headers or ())
        self._crc = Armorable.CRC24_INIT
        self._pending = bytearray()
        self._started = False

    def _start(self):
        head = '-----BEGIN PGP {}-----\n'.format(self.block_type)
        head += ''.join('{}: {}\n'.format(key, val) for key, val in self.headers.items())
        head += '\n'
        self._sink.write(head.encode('ascii'))
        self._started = True

    def _emit_lines(self, data):
        lines = bytearray()
        for i in range(0, len(data), self._line_octets):
            lines += base64.b64encode(bytes(data[i:i + self._line_octets]))
            lines += b'\n'
        self._sink.write(bytes(lines))

    def _write(self, data):
        if not self._started:
            self._start()

        self._crc = Armorable.crc24(data, self._crc)
        self._pending += data

        whole = len(self._pending) - (len(self._pending) % self._line_octets)
        if whole:
            self._emit_lines(self._pending[:whole])
            del self._pending[:whole]

    def _finish(self):
        if not self._started:
            self._start()

        if self._pending:
            self._emit_lines(self._pending)
            self._pending.clear()

        tail = '={}\n-----END PGP {}-----\n'.format(Armorable.armor_crc(self._crc), self.block_type)
        self._sink.write(tail.encode('ascii'))


class PacketWriter(StreamWriter):
    """
    Frames a packet body of unknown length. Full chunks are written with partial body lengths; whatever
    remains on close is written with a definite length, so a body that fits in one chunk gets an
    ordinary one, two, or five octet length.
    """
    def __init__(self, sink, packet_type, chunk_size=DEFAULT_CHUNK_SIZE):
        super().__init__(sink)
        exponent = chunk_size.bit_length() - 1
        if chunk_size != (1 << exponent) or chunk_size < 512:
            raise ValueError("chunk size must be a power of two of at least 512 octets, not {}".format(chunk_size))

        self.packet_type = PacketType(packet_type)
        self._chunk_size = chunk_size
        self._exponent = exponent
        self._buffer = bytearray()
        self._tagged = False

    def _emit(self, length, body):
        if not self._tagged:
            self._sink.write(bytes([0xC0 | self.packet_type]))
            self._tagged = True

        self._sink.write(length)
        self._sink.write(bytes(body))

    def _write(self, data):
        self._buffer += data

        # only flush a chunk once more data follows it; the last chunk must carry a definite length
        while len(self._buffer) > self._chunk_size:
            self._emit(Header.encode_partial_length(self._exponent), self._buffer[:self._chunk_size])
            del self._buffer[:self._chunk_size]

    def _finish(self):
        self._emit(Header.encode_length(len(self._buffer)), self._buffer)
        self._buffer.clear()


class _LayerWriter(StreamWriter):
    # a layer whose output is framed as a single packet
    def __init__(self, sink, packet_type, chunk_size=DEFAULT_CHUNK_SIZE):
        super().__init__(sink)
        self._packet = PacketWriter(sink, packet_type, chunk_size)

    def abandon(self):
        super().abandon()
        self._packet.abandon()


class EncryptedDataWriter(_LayerWriter):
    """
    The symmetrically encrypted layer of a message.

    With integrity protection this is a version 1 Sym. Encrypted Integrity Protected Data packet:
    OpenPGP CFB with an all-zero IV over a random block, its last two octets repeated, the data,
    and a trailing MDC packet. Without it, a legacy Symmetrically Encrypted Data packet is written,
    with CFB resynchronized after the random prefix.
    """
    def __init__(self, sink, session_key, cipher=SymmetricKeyAlgorithm.AES256, integrity_protected=True,
                 chunk_size=DEFAULT_CHUNK_SIZE):
        ptype = PacketType.SymmetricallyEncryptedIntegrityProtectedData if integrity_protected \
            else PacketType.SymmetricallyEncryptedData
        super().__init__(sink, ptype, chunk_size)

        self.cipher = SymmetricKeyAlgorithm(cipher)
        self.integrity_protected = integrity_protected

        iv = self.cipher.gen_iv()
        prefix = iv + iv[-2:]

        if integrity_protected:
            self._mdc = HashAlgorithm.SHA1.hasher
            self._mdc.update(prefix)
            self._encryptor = _cfb_encryptor(bytes(session_key), self.cipher)

            self._packet.write(b'\x01')
            self._packet.write(self._encryptor.update(prefix))

        else:
            self._mdc = None
            bs = self.cipher.block_size // 8
            ct = _cfb_encrypt(prefix, bytes(session_key), self.cipher)
            self._encryptor = _cfb_encryptor(bytes(session_key), self.cipher, bytes(ct[2:bs + 2]))

            self._packet.write(ct)

    def _write(self, data):
        if self._mdc is not None:
            self._mdc.update(data)
        self._packet.write(self._encryptor.update(data))

    def _finish(self):
        trailer = b''
        if self._mdc is not None:
            # the MDC covers its own two header octets
            self._mdc.update(b'\xd3\x14')
            mdc = MDC()
            mdc.mdc = self._mdc.finalize()
            mdc.update_hlen()
            trailer = bytes(mdc)

        self._packet.write(self._encryptor.update(trailer) + self._encryptor.finalize())
        self._packet.close()


class CompressedDataWriter(_LayerWriter):
    def __init__(self, sink, algorithm=CompressionAlgorithm.ZLIB, chunk_size=DEFAULT_CHUNK_SIZE):
        super().__init__(sink, PacketType.CompressedData, chunk_size)
        self.algorithm = CompressionAlgorithm(algorithm)
        self._compressor = self.algorithm.compressor()
        self._packet.write(bytes([self.algorithm]))

    def _write(self, data):
        self._packet.write(self._compressor.compress(data))

    def _finish(self):
        self._packet.write(self._compressor.flush())
        self._packet.close()


class LiteralDataWriter(_LayerWriter):
    def __init__(self, sink, filename="", mtime=None, format=LiteralFormat.Binary, chunk_size=DEFAULT_CHUNK_SIZE):
        super().__init__(sink, PacketType.LiteralData, chunk_size)
        lit = LiteralData()
        lit.format = LiteralFormat(format)
        lit.filename = filename
        lit.mtime = datetime.now(timezone.utc) if mtime is None else mtime

        self.format = lit.format
        self.filename = lit.filename
        self.mtime = lit.mtime
        self._packet.write(lit.header_fields())

    def _write(self, data):
        self._packet.write(data)

    def _finish(self):
        self._packet.close()
