""" test parsing and building the packets that make up a message
"""
import pytest

from datetime import datetime, timezone

from pgpstream.constants import CompressionAlgorithm
from pgpstream.constants import EllipticCurveOID
from pgpstream.constants import HashAlgorithm
from pgpstream.constants import LiteralFormat
from pgpstream.constants import PubKeyAlgorithm
from pgpstream.constants import SymmetricKeyAlgorithm
from pgpstream.errors import PGPDecryptionError
from pgpstream.packet import CompressedData
from pgpstream.packet import IntegrityProtectedSKEDataV1
from pgpstream.packet import LiteralData
from pgpstream.packet import Packet
from pgpstream.packet import PKESessionKeyV3
from pgpstream.packet import PrivKeyV4
from pgpstream.packet import PubKeyV4
from pgpstream.packet import UserID


encryption_keys = {
    'rsa': (PubKeyAlgorithm.RSAEncryptOrSign, 2048),
    'ecdh-p256': (PubKeyAlgorithm.ECDH, EllipticCurveOID.NIST_P256),
    'ecdh-cv25519': (PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519),
}

ciphers = [SymmetricKeyAlgorithm.AES128, SymmetricKeyAlgorithm.AES192, SymmetricKeyAlgorithm.AES256]


def _reparse(pkt):
    return Packet(bytearray(bytes(pkt)))


@pytest.fixture(scope='module', params=[v for _, v in sorted(encryption_keys.items())], ids=sorted(encryption_keys.keys()))
def enc_key(request):
    return PrivKeyV4.new(*request.param)


@pytest.fixture(scope='module')
def rsa_key():
    return PrivKeyV4.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)


class TestKeyPackets(object):
    def test_pubkey(self, rsa_key):
        pub = rsa_key.pubkey()

        assert isinstance(pub, PubKeyV4)
        assert not isinstance(pub, PrivKeyV4)
        assert pub.fingerprint == rsa_key.fingerprint
        assert pub.pubdata() == rsa_key.pubdata()

    def test_reparse(self, rsa_key):
        pkt = _reparse(rsa_key)

        assert isinstance(pkt, PrivKeyV4)
        assert pkt.fingerprint == rsa_key.fingerprint
        assert pkt.created == rsa_key.created.replace(microsecond=0)

    def test_fingerprint_stable(self, rsa_key):
        assert rsa_key.fingerprint == rsa_key.fingerprint
        assert len(rsa_key.fingerprint) == 40

    def test_protect_unprotect(self):
        key = PrivKeyV4.new(PubKeyAlgorithm.RSAEncryptOrSign, 2048)
        fp = key.fingerprint
        key.protect(b'QwertyUiop', SymmetricKeyAlgorithm.AES256, HashAlgorithm.SHA1)

        assert key.protected
        assert not key.unlocked

        key = _reparse(key)
        assert key.protected
        assert key.fingerprint == fp

        with pytest.raises(PGPDecryptionError, match='Passphrase was incorrect!'):
            key.unprotect(b'QwertyUiopX')

        key.unprotect(b'QwertyUiop')
        assert key.unlocked

        key.clear()
        assert not key.unlocked

    def test_sign_prehashed(self, rsa_key):
        data = b'signed the long way and the short way'
        sig = rsa_key.sign(data, HashAlgorithm.SHA256)
        presig = rsa_key.sign(HashAlgorithm.SHA256.digest(data), HashAlgorithm.SHA256, prehashed=True)

        # PKCS#1 v1.5 is deterministic
        assert sig == presig


class TestSessionKey(object):
    @pytest.mark.parametrize('cipher', ciphers, ids=[c.name for c in ciphers])
    def test_encrypt_decrypt(self, enc_key, cipher):
        sk = cipher.gen_key()
        pkesk = PKESessionKeyV3()
        pkesk.encrypt_sk(enc_key.pubkey(), cipher, sk)

        pkesk = _reparse(pkesk)
        assert isinstance(pkesk, PKESessionKeyV3)
        assert pkesk.encrypter == enc_key.fingerprint.keyid
        assert pkesk.pkalg == enc_key.pkalg

        assert pkesk.decrypt_sk(enc_key) == (cipher, sk)

    @pytest.mark.parametrize('keyargs', [v for _, v in sorted(encryption_keys.items())], ids=sorted(encryption_keys.keys()))
    def test_wrong_key(self, keyargs):
        # RSA decryption with the wrong key yields random bytes rather than a padding error
        key = PrivKeyV4.new(*keyargs)
        other = PrivKeyV4.new(*keyargs)
        pkesk = PKESessionKeyV3()
        pkesk.encrypt_sk(key.pubkey(), SymmetricKeyAlgorithm.AES256, SymmetricKeyAlgorithm.AES256.gen_key())

        with pytest.raises(PGPDecryptionError):
            pkesk.decrypt_sk(other)


class TestDataPackets(object):
    def test_literal(self):
        lit = LiteralData()
        lit.format = LiteralFormat.Binary
        lit.filename = 'hello.txt'
        lit.mtime = datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        lit.contents = b'hello world'
        lit.update_hlen()

        pkt = _reparse(lit)
        assert isinstance(pkt, LiteralData)
        assert pkt.format is LiteralFormat.Binary
        assert pkt.filename == 'hello.txt'
        assert pkt.mtime == datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert pkt.contents == b'hello world'

    @pytest.mark.parametrize('calg', list(CompressionAlgorithm), ids=[c.name for c in CompressionAlgorithm])
    def test_compressed(self, calg):
        lit = LiteralData()
        lit.contents = b'compress me ' * 100
        lit.update_hlen()

        comp = CompressedData()
        comp.calg = calg
        comp.packets.append(lit)
        comp.update_hlen()

        pkt = _reparse(comp)
        assert pkt.calg is calg
        assert len(pkt.packets) == 1
        assert pkt.packets[0].contents == lit.contents

    @pytest.mark.parametrize('uid,name,comment,email', [
        ('Alice (Work) <alice@example.com>', 'Alice', 'Work', 'alice@example.com'),
        ('Bob <bob@example.com>', 'Bob', '', 'bob@example.com'),
        ('Just A Name', 'Just A Name', '', ''),
    ], ids=['full', 'no-comment', 'name-only'])
    def test_userid(self, uid, name, comment, email):
        pkt = UserID()
        pkt.uid = uid
        pkt.update_hlen()
        pkt = _reparse(pkt)

        assert pkt.uid == uid
        assert pkt.name == name
        assert pkt.comment == comment
        assert pkt.email == email

    @pytest.mark.parametrize('cipher', ciphers, ids=[c.name for c in ciphers])
    def test_seipd(self, cipher):
        key = cipher.gen_key()
        seipd = IntegrityProtectedSKEDataV1()
        seipd.encrypt(key, cipher, bytearray(b'protected payload'))

        pkt = _reparse(seipd)
        assert isinstance(pkt, IntegrityProtectedSKEDataV1)
        assert pkt.decrypt(key, cipher) == b'protected payload'

    def test_seipd_modified(self):
        cipher = SymmetricKeyAlgorithm.AES256
        key = cipher.gen_key()
        seipd = IntegrityProtectedSKEDataV1()
        seipd.encrypt(key, cipher, bytearray(b'protected payload'))
        seipd.ct[-1] ^= 0x01

        with pytest.raises(PGPDecryptionError):
            seipd.decrypt(key, cipher)
