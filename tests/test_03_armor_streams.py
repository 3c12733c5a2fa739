""" test the streaming writers that frame, compress, encrypt, and armor a message
"""
import pytest

import io
import itertools

from datetime import datetime, timezone

from pgpstream.constants import CompressionAlgorithm
from pgpstream.constants import LiteralFormat
from pgpstream.constants import PacketType
from pgpstream.constants import SymmetricKeyAlgorithm
from pgpstream.errors import PGPDecryptionError
from pgpstream.packet import CompressedData
from pgpstream.packet import IntegrityProtectedSKEDataV1
from pgpstream.packet import LiteralData
from pgpstream.packet import Packet
from pgpstream.packet import SKEData
from pgpstream.streams import ArmorWriter
from pgpstream.streams import CompressedDataWriter
from pgpstream.streams import EncryptedDataWriter
from pgpstream.streams import LiteralDataWriter
from pgpstream.streams import PacketWriter
from pgpstream.types import Armorable
from pgpstream.types import Header


payload_sizes = [0, 1, 47, 48, 49, 511, 512, 513, 2048, 5000]


def _write_in_pieces(writer, data, size=100):
    for i in range(0, len(data), size):
        writer.write(data[i:i + size])


class TestArmorWriter(object):
    @pytest.mark.parametrize('size', payload_sizes)
    def test_armor(self, size):
        data = bytes(range(256)) * (size // 256) + bytes(range(size % 256))
        out = io.BytesIO()

        with ArmorWriter(out, "MESSAGE") as armored:
            _write_in_pieces(armored, data, 13)

        text = out.getvalue().decode('ascii')
        lines = text.splitlines()

        assert lines[0] == '-----BEGIN PGP MESSAGE-----'
        assert lines[-1] == '-----END PGP MESSAGE-----'
        assert lines[-2] == '=' + Armorable.armor_crc(Armorable.crc24(data))
        assert all(len(line) <= 64 for line in lines[2:-2])

        unarmored = Armorable.ascii_unarmor(text)
        assert unarmored['magic'] == 'MESSAGE'
        assert unarmored['body'] == bytearray(data)

    def test_headers(self):
        out = io.BytesIO()
        with ArmorWriter(out, "MESSAGE", headers=[('Version', 'pgpstream')]) as armored:
            armored.write(b'\x01\x02\x03')

        unarmored = Armorable.ascii_unarmor(out.getvalue())
        assert unarmored['headers'] == {'Version': 'pgpstream'}

    def test_sink_left_open(self):
        out = io.BytesIO()
        with ArmorWriter(out) as armored:
            armored.write(b'data')

        assert armored.closed
        assert not out.closed

    def test_abandoned_on_error(self):
        out = io.BytesIO()
        with pytest.raises(RuntimeError):
            with ArmorWriter(out) as armored:
                armored.write(b'data')
                raise RuntimeError("boom")

        assert armored.abandoned
        assert b'-----END PGP' not in out.getvalue()

    def test_write_after_close(self):
        armored = ArmorWriter(io.BytesIO())
        armored.close()

        with pytest.raises(ValueError):
            armored.write(b'late')


class TestPacketWriter(object):
    @pytest.mark.parametrize('size', payload_sizes)
    def test_framing(self, size):
        data = b'\xa5' * size
        out = io.BytesIO()

        with PacketWriter(out, PacketType.LiteralData, chunk_size=512) as pw:
            _write_in_pieces(pw, data, 77)

        raw = out.getvalue()
        assert raw[0] == 0xC0 | PacketType.LiteralData

        # more than one chunk is written with partial lengths
        if size > 512:
            assert raw[1] == 0xE9
        else:
            assert raw[1:].startswith(bytes(Header.encode_length(size)))

    @pytest.mark.parametrize('chunk_size', [0, 100, 511, 1000])
    def test_invalid_chunk_size(self, chunk_size):
        with pytest.raises(ValueError):
            PacketWriter(io.BytesIO(), PacketType.LiteralData, chunk_size=chunk_size)


class TestLayerWriters(object):
    @pytest.mark.parametrize('size', payload_sizes)
    def test_literal(self, size):
        data = b'\x5a' * size
        mtime = datetime(2021, 6, 1, tzinfo=timezone.utc)
        out = io.BytesIO()

        with LiteralDataWriter(out, filename='data.bin', mtime=mtime, chunk_size=512) as lit:
            _write_in_pieces(lit, data)

        pkt = Packet(bytearray(out.getvalue()))
        assert isinstance(pkt, LiteralData)
        assert pkt.format is LiteralFormat.Binary
        assert pkt.filename == 'data.bin'
        assert pkt.mtime == mtime
        assert pkt.contents == data

    @pytest.mark.parametrize('calg', list(CompressionAlgorithm), ids=[c.name for c in CompressionAlgorithm])
    def test_compressed(self, calg):
        data = b'compressible ' * 1000
        out = io.BytesIO()

        with CompressedDataWriter(out, calg, chunk_size=512) as comp:
            with LiteralDataWriter(comp, chunk_size=512) as lit:
                _write_in_pieces(lit, data, 1000)

        pkt = Packet(bytearray(out.getvalue()))
        assert isinstance(pkt, CompressedData)
        assert pkt.calg is calg
        assert pkt.packets[0].contents == data

    @pytest.mark.parametrize('cipher,size',
                             itertools.product([SymmetricKeyAlgorithm.AES128, SymmetricKeyAlgorithm.AES256],
                                               [0, 15, 16, 17, 600, 5000]))
    def test_integrity_protected(self, cipher, size):
        key = cipher.gen_key()
        data = bytes(i % 251 for i in range(size))
        out = io.BytesIO()

        with EncryptedDataWriter(out, key, cipher, integrity_protected=True, chunk_size=512) as enc:
            _write_in_pieces(enc, data, 33)

        pkt = Packet(bytearray(out.getvalue()))
        assert isinstance(pkt, IntegrityProtectedSKEDataV1)
        assert pkt.decrypt(key, cipher) == data

    def test_integrity_protected_wrong_key(self):
        cipher = SymmetricKeyAlgorithm.AES256
        out = io.BytesIO()

        with EncryptedDataWriter(out, cipher.gen_key(), cipher) as enc:
            enc.write(b'secret')

        with pytest.raises(PGPDecryptionError):
            Packet(bytearray(out.getvalue())).decrypt(cipher.gen_key(), cipher)

    @pytest.mark.parametrize('size', [0, 17, 600, 5000])
    def test_legacy(self, size):
        cipher = SymmetricKeyAlgorithm.AES256
        key = cipher.gen_key()
        data = bytes(i % 251 for i in range(size))
        out = io.BytesIO()

        with EncryptedDataWriter(out, key, cipher, integrity_protected=False, chunk_size=512) as enc:
            _write_in_pieces(enc, data, 33)

        pkt = Packet(bytearray(out.getvalue()))
        assert isinstance(pkt, SKEData)
        assert pkt.decrypt(key, cipher) == data

    def test_nested_abandon(self):
        out = io.BytesIO()
        cipher = SymmetricKeyAlgorithm.AES256

        with pytest.raises(RuntimeError):
            with ArmorWriter(out) as armored:
                with EncryptedDataWriter(armored, cipher.gen_key(), cipher) as enc:
                    with LiteralDataWriter(enc) as lit:
                        lit.write(b'partial')
                        raise RuntimeError("boom")

        assert lit.abandoned
        assert enc.abandoned
        assert armored.abandoned
