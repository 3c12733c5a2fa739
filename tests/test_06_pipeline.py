""" test streaming sign-then-encrypt, and reading the result back
"""
import pytest

import io
import logging
import os

from pgpstream.config import EncryptionConfig
from pgpstream.config import KeyringConfig
from pgpstream.constants import CompressionAlgorithm
from pgpstream.constants import HashAlgorithm
from pgpstream.constants import KeyFlags
from pgpstream.constants import SymmetricKeyAlgorithm
from pgpstream.errors import AmbiguousSigningKey
from pgpstream.errors import IOFailure
from pgpstream.errors import KeyResolutionError
from pgpstream.errors import NoEncryptionKeyFound
from pgpstream.errors import PassphraseFailure
from pgpstream.errors import PGPDecryptionError
from pgpstream.errors import PGPError
from pgpstream.errors import SigningKeyNotFound
from pgpstream.errors import WrongPassphrase
from pgpstream.generation import KeyRingBuilder
from pgpstream.keyspec import KeySpecBuilder
from pgpstream.keyspec import KeyType
from pgpstream.packet import IntegrityProtectedSKEDataV1
from pgpstream.packet import Packet
from pgpstream.packet import PKESessionKeyV3
from pgpstream.packet import SKEData
from pgpstream.pgp import PGPKeyring
from pgpstream.pipeline import SignEncryptPipeline
from pgpstream.reader import decrypt_and_verify
from pgpstream.types import Armorable


def _only(keyring):
    return next(iter(keyring))


@pytest.fixture(scope='module')
def alice():
    return KeyRingBuilder.simple_rsa_keyring('Alice <alice@example.com>')


@pytest.fixture(scope='module')
def bob():
    return KeyRingBuilder.simple_ecc_keyring('Bob <bob@example.com>')


@pytest.fixture(scope='module')
def carol():
    master = KeySpecBuilder(KeyType.eddsa()) \
        .allow_key_to_be_used_to(KeyFlags.Certify, KeyFlags.Sign) \
        .with_default_algorithms() \
        .build()
    encryption = KeySpecBuilder(KeyType.cv25519()) \
        .allow_key_to_be_used_to(KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage) \
        .with_default_algorithms() \
        .build()

    return KeyRingBuilder() \
        .with_master_key(master) \
        .with_subkey(encryption) \
        .with_primary_user_id('Carol <carol@example.org>') \
        .with_passphrase('correct horse') \
        .build()


@pytest.fixture(scope='module')
def sender(alice, bob, carol):
    # alice signs; bob and carol are the recipients she knows about
    public = PGPKeyring(_only(alice.public_keyring), _only(bob.public_keyring), _only(carol.public_keyring))
    return KeyringConfig.with_unprotected_keys(public, alice.secret_keyring)


class _Output(io.BytesIO):
    # the pipeline closes the output
    value = b''

    def close(self):
        if not self.closed:
            self.value = self.getvalue()
        super().close()


def _encrypt(pipeline, data):
    out = _Output()
    nbytes = pipeline.encrypt_and_sign(io.BytesIO(data), out)
    assert nbytes == len(data)
    assert out.closed
    return out.value


class TestRoundTrip(object):
    def test_hello_world(self, sender, alice, bob):
        pipeline = SignEncryptPipeline(sender, 'bob@example.com', 'alice@example.com')
        message = _encrypt(pipeline, b'hello world')

        assert message.startswith(b'-----BEGIN PGP MESSAGE-----\n')

        result = decrypt_and_verify(message, _only(bob.secret_keyring),
                                    verify_with=_only(alice.public_keyring))
        assert result.plaintext == b'hello world'
        assert len(result.signatures) == 1
        assert result.signatures[0].signer == _only(alice.public_keyring).fingerprint.keyid
        assert result.signatures[0].signers_uid == 'Alice <alice@example.com>'
        assert result.signatures[0].hash_algorithm is HashAlgorithm.SHA256
        assert result.verified
        assert _only(alice.secret_keyring).key_size == 3072

    def test_to_file(self, sender, bob, tmp_path):
        pipeline = SignEncryptPipeline(sender, _only(bob.secret_keyring), 'Alice')
        path = tmp_path / 'message.asc'

        with open(path, 'wb') as out:
            pipeline.encrypt_and_sign(io.BytesIO(b'to a file'), out)
            assert out.closed

        result = decrypt_and_verify(path.read_text(), _only(bob.secret_keyring))
        assert result.plaintext == b'to a file'
        assert result.verified is None

    def test_encrypted_to_subkey(self, sender, bob):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        recipient = _only(bob.public_keyring)

        assert pipeline.encryption_key.fingerprint == list(recipient.subkeys.values())[0].fingerprint
        assert pipeline.signing_key.fingerprint == _only(sender.secret_keyring).fingerprint

        pkesk = Packet(Armorable.ascii_unarmor(_encrypt(pipeline, b'subkey'))['body'])
        assert isinstance(pkesk, PKESessionKeyV3)
        assert pkesk.encrypter == pipeline.encryption_key.fingerprint.keyid

    def test_large(self, sender, bob, alice):
        # several partial-length chunks at every layer
        data = os.urandom(200000)
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice', EncryptionConfig(armor=False, buffer_size=4096))

        result = decrypt_and_verify(_encrypt(pipeline, data), _only(bob.secret_keyring),
                                    verify_with=_only(alice.public_keyring))
        assert result.plaintext == data
        assert result.verified

    def test_empty(self, sender, bob, alice):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        result = decrypt_and_verify(_encrypt(pipeline, b''), _only(bob.secret_keyring),
                                    verify_with=_only(alice.public_keyring))

        assert result.plaintext == b''
        assert result.verified

    @pytest.mark.parametrize('config', [
        EncryptionConfig(hash_algorithm=HashAlgorithm.SHA512),
        EncryptionConfig(symmetric_algorithm=SymmetricKeyAlgorithm.AES128),
        EncryptionConfig(compression=CompressionAlgorithm.BZ2),
        EncryptionConfig(compression=CompressionAlgorithm.Uncompressed),
        EncryptionConfig(hash_algorithm=0x09, symmetric_algorithm=0x08, compression=0x01),
    ], ids=['sha512', 'aes128', 'bz2', 'uncompressed', 'int-codes'])
    def test_configs(self, sender, bob, alice, config):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice', config)
        result = decrypt_and_verify(_encrypt(pipeline, b'configured'), _only(bob.secret_keyring),
                                    verify_with=_only(alice.public_keyring))

        assert result.plaintext == b'configured'
        assert result.signatures[0].hash_algorithm is HashAlgorithm(config.hash_algorithm)
        assert result.verified

    def test_different_ciphertexts(self, sender):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        assert _encrypt(pipeline, b'same') != _encrypt(pipeline, b'same')

    def test_binary(self, sender):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice', EncryptionConfig(armor=False))
        data = bytearray(_encrypt(pipeline, b'binary'))

        assert isinstance(Packet(data), PKESessionKeyV3)
        assert isinstance(Packet(data), IntegrityProtectedSKEDataV1)
        assert len(data) == 0

    def test_without_integrity_protection(self, sender, bob, alice):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice', EncryptionConfig(armor=False,
                                                                                integrity_protection=False))
        message = _encrypt(pipeline, b'legacy')
        data = bytearray(message)
        Packet(data)
        assert isinstance(Packet(data), SKEData)

        result = decrypt_and_verify(message, _only(bob.secret_keyring), verify_with=_only(alice.public_keyring))
        assert result.plaintext == b'legacy'

    def test_protected_signer(self, alice, carol):
        config = KeyringConfig.with_password(PGPKeyring(_only(alice.public_keyring)), carol.secret_keyring,
                                             'correct horse')
        pipeline = SignEncryptPipeline(config, 'Alice', 'Carol')
        message = _encrypt(pipeline, b'from carol')

        assert not _only(carol.secret_keyring).is_unlocked

        result = decrypt_and_verify(message, _only(alice.secret_keyring),
                                    verify_with=_only(carol.public_keyring))
        assert result.plaintext == b'from carol'
        assert result.verified

    def test_protected_recipient(self, sender, carol):
        pipeline = SignEncryptPipeline(sender, 'Carol', 'Alice')
        message = _encrypt(pipeline, b'to carol')
        secret = _only(carol.secret_keyring)

        assert decrypt_and_verify(message, secret, 'correct horse').plaintext == b'to carol'

        with pytest.raises(PassphraseFailure):
            decrypt_and_verify(message, secret)

        with pytest.raises(WrongPassphrase):
            decrypt_and_verify(message, secret, 'wrong horse')

    def test_logs(self, sender, caplog):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')

        with caplog.at_level(logging.INFO, logger='pgpstream.pipeline'):
            _encrypt(pipeline, b'logged')

        assert any(r.getMessage().startswith('encrypt_and_sign: 6 bytes') for r in caplog.records)


class TestResolution(object):
    def test_signer_not_found(self, sender):
        with pytest.raises(SigningKeyNotFound):
            SignEncryptPipeline(sender, 'Bob', 'Mallory')

    def test_signer_ambiguous(self, alice, bob):
        config = KeyringConfig.with_unprotected_keys(PGPKeyring(_only(bob.public_keyring)),
                                                     PGPKeyring(_only(alice.secret_keyring),
                                                                _only(bob.secret_keyring)))
        with pytest.raises(AmbiguousSigningKey):
            SignEncryptPipeline(config, 'Bob', 'example.com')

    def test_signer_public_only(self, alice, bob):
        config = KeyringConfig.with_unprotected_keys(PGPKeyring(_only(bob.public_keyring)),
                                                     PGPKeyring(_only(alice.public_keyring)))
        with pytest.raises(SigningKeyNotFound):
            SignEncryptPipeline(config, 'Bob', 'Alice')

    def test_wrong_passphrase(self, bob, carol):
        config = KeyringConfig.with_password(bob.public_keyring, carol.secret_keyring, 'wrong horse')
        with pytest.raises(WrongPassphrase):
            SignEncryptPipeline(config, 'Bob', 'Carol')

    def test_recipient_not_found(self, sender):
        with pytest.raises(NoEncryptionKeyFound):
            SignEncryptPipeline(sender, 'Mallory', 'Alice')

    def test_recipient_ambiguous(self, sender):
        with pytest.raises(KeyResolutionError):
            SignEncryptPipeline(sender, 'example.com', 'Alice')

    def test_recipient_cannot_encrypt(self, sender):
        signing_only = KeyRingBuilder() \
            .with_master_key(KeySpecBuilder(KeyType.eddsa())
                             .allow_key_to_be_used_to(KeyFlags.Certify, KeyFlags.Sign)
                             .build()) \
            .with_primary_user_id('Sam') \
            .without_passphrase() \
            .build()

        with pytest.raises(NoEncryptionKeyFound):
            SignEncryptPipeline(sender, _only(signing_only.public_keyring), 'Alice')


class TestFailures(object):
    class _BrokenInput(object):
        def read(self, size=-1):
            raise OSError("device unplugged")

    def test_read_error(self, sender):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        out = io.BytesIO()

        with pytest.raises(IOFailure) as excinfo:
            pipeline.encrypt_and_sign(self._BrokenInput(), out)

        assert isinstance(excinfo.value.__cause__, OSError)
        assert out.closed

    def test_close_error(self, sender):
        class _Unclosable(io.BytesIO):
            def close(self):
                raise OSError("disk full")

        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        with pytest.raises(IOFailure):
            pipeline.encrypt_and_sign(io.BytesIO(b'data'), _Unclosable())

    def test_read_error_and_close_error(self, sender):
        class _Unclosable(io.BytesIO):
            def close(self):
                raise OSError("disk full")

        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        with pytest.raises(IOFailure, match='device unplugged'):
            pipeline.encrypt_and_sign(self._BrokenInput(), _Unclosable())

    def test_pipeline_reusable(self, sender, bob):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        with pytest.raises(IOFailure):
            pipeline.encrypt_and_sign(self._BrokenInput(), io.BytesIO())

        result = decrypt_and_verify(_encrypt(pipeline, b'again'), _only(bob.secret_keyring))
        assert result.plaintext == b'again'

    def test_tampered(self, sender, bob):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice', EncryptionConfig(armor=False))
        message = bytearray(_encrypt(pipeline, b'tamper with me'))
        message[-1] ^= 0x01

        with pytest.raises(PGPDecryptionError):
            decrypt_and_verify(message, _only(bob.secret_keyring))

    def test_not_for_me(self, sender, alice):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')

        with pytest.raises(PGPDecryptionError):
            decrypt_and_verify(_encrypt(pipeline, b'for bob'), _only(alice.secret_keyring))

    def test_verify_with_other_key(self, sender, bob):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        result = decrypt_and_verify(_encrypt(pipeline, b'signed by alice'), _only(bob.secret_keyring),
                                    verify_with=_only(bob.public_keyring))

        assert len(result.verified) == 1
        assert not result.verified

    def test_public_key_cannot_decrypt(self, sender, bob):
        pipeline = SignEncryptPipeline(sender, 'Bob', 'Alice')
        with pytest.raises(PGPError):
            decrypt_and_verify(_encrypt(pipeline, b'x'), _only(bob.public_keyring))
