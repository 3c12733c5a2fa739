""" test key specifications, passphrases, and configuration objects
"""
import pytest

from pgpstream.config import EncryptionConfig
from pgpstream.config import KeyringConfig
from pgpstream.constants import CompressionAlgorithm
from pgpstream.constants import EllipticCurveOID
from pgpstream.constants import Features
from pgpstream.constants import HashAlgorithm
from pgpstream.constants import KeyFlags
from pgpstream.constants import PubKeyAlgorithm
from pgpstream.constants import RsaLength
from pgpstream.constants import SymmetricKeyAlgorithm
from pgpstream.errors import InvalidKeySpec
from pgpstream.errors import PassphraseFailure
from pgpstream.errors import PGPInsecureCipherError
from pgpstream.errors import UnsupportedAlgorithm
from pgpstream.keyspec import DEFAULT_CIPHERS
from pgpstream.keyspec import DEFAULT_HASHES
from pgpstream.keyspec import KeySpec
from pgpstream.keyspec import KeySpecBuilder
from pgpstream.keyspec import KeyType
from pgpstream.passphrase import Passphrase
from pgpstream.pgp import PGPKeyring


class TestKeyType(object):
    @pytest.mark.parametrize('length', list(RsaLength), ids=[l.name for l in RsaLength])
    def test_rsa(self, length):
        kt = KeyType.rsa(int(length))
        assert kt.algorithm is PubKeyAlgorithm.RSAEncryptOrSign
        assert kt.parameter is length
        assert kt.can_sign and kt.can_encrypt
        assert str(kt) == 'RSAEncryptOrSign-{:d}'.format(length)

    @pytest.mark.parametrize('length', [1024, 3000, 0])
    def test_rsa_invalid(self, length):
        with pytest.raises(InvalidKeySpec):
            KeyType.rsa(length)

    def test_curves(self):
        assert KeyType.ecdsa().parameter is EllipticCurveOID.NIST_P256
        assert KeyType.ecdh(EllipticCurveOID.NIST_P384).parameter is EllipticCurveOID.NIST_P384
        assert KeyType.eddsa() == (PubKeyAlgorithm.EdDSA, EllipticCurveOID.Ed25519)
        assert KeyType.cv25519() == (PubKeyAlgorithm.ECDH, EllipticCurveOID.Curve25519)

        assert KeyType.ecdsa().can_sign and not KeyType.ecdsa().can_encrypt
        assert KeyType.ecdh().can_encrypt and not KeyType.ecdh().can_sign

    @pytest.mark.parametrize('factory,curve', [
        (KeyType.ecdsa, EllipticCurveOID.Ed25519),
        (KeyType.ecdsa, EllipticCurveOID.Curve25519),
        (KeyType.ecdsa, 'NIST_P256'),
        (KeyType.ecdh, EllipticCurveOID.Ed25519),
    ], ids=['ecdsa-ed25519', 'ecdsa-cv25519', 'ecdsa-str', 'ecdh-ed25519'])
    def test_curves_invalid(self, factory, curve):
        with pytest.raises(InvalidKeySpec):
            factory(curve)


class TestKeySpecBuilder(object):
    def test_build(self):
        spec = KeySpecBuilder(KeyType.rsa()) \
            .allow_key_to_be_used_to(KeyFlags.Certify, KeyFlags.Sign) \
            .with_default_algorithms() \
            .build()

        assert isinstance(spec, KeySpec)
        assert spec.flags == {KeyFlags.Certify, KeyFlags.Sign}
        assert spec.can_certify
        assert spec.preferred_ciphers == DEFAULT_CIPHERS
        assert spec.preferred_hashes == DEFAULT_HASHES
        assert Features.ModificationDetection in spec.features
        assert not spec.inherit_subpackets_from_master

    def test_hashed_subpackets(self):
        spec = KeySpecBuilder(KeyType.cv25519()) \
            .allow_key_to_be_used_to(KeyFlags.EncryptCommunications) \
            .with_detailed_configuration(ciphers=[SymmetricKeyAlgorithm.AES128], hashes=[0x08]) \
            .build()

        prefs = spec.hashed_subpackets()
        assert prefs == {'usage': {KeyFlags.EncryptCommunications},
                         'ciphers': [SymmetricKeyAlgorithm.AES128],
                         'hashes': [HashAlgorithm.SHA256]}

    def test_no_preferences(self):
        spec = KeySpecBuilder(KeyType.eddsa()).allow_key_to_be_used_to(KeyFlags.Sign).build()
        assert spec.hashed_subpackets() == {'usage': {KeyFlags.Sign}}

    def test_inherited(self):
        spec = KeySpecBuilder(KeyType.ecdsa()) \
            .allow_key_to_be_used_to(KeyFlags.Authentication) \
            .with_inherited_subpackets() \
            .build()
        assert spec.inherit_subpackets_from_master

    def test_flags_accumulate(self):
        builder = KeySpecBuilder(KeyType.rsa()).allow_key_to_be_used_to(KeyFlags.Sign)
        builder.allow_key_to_be_used_to(KeyFlags.EncryptStorage)
        assert builder.build().flags == {KeyFlags.Sign, KeyFlags.EncryptStorage}

    @pytest.mark.parametrize('key_type,flags', [
        (KeyType.ecdh(), [KeyFlags.Sign]),
        (KeyType.cv25519(), [KeyFlags.Certify]),
        (KeyType.eddsa(), [KeyFlags.EncryptCommunications]),
        (KeyType.ecdsa(), [KeyFlags.EncryptStorage]),
        (KeyType.rsa(), []),
    ], ids=['ecdh-sign', 'cv25519-certify', 'eddsa-encrypt', 'ecdsa-encrypt', 'no-flags'])
    def test_build_invalid(self, key_type, flags):
        with pytest.raises(InvalidKeySpec):
            KeySpecBuilder(key_type).allow_key_to_be_used_to(*flags).build()

    def test_insecure_cipher_preference(self):
        with pytest.raises(InvalidKeySpec):
            KeySpecBuilder(KeyType.rsa()).with_detailed_configuration(ciphers=[SymmetricKeyAlgorithm.IDEA])

    def test_not_a_key_type(self):
        with pytest.raises(InvalidKeySpec):
            KeySpecBuilder((PubKeyAlgorithm.RSAEncryptOrSign, 2048))


class TestPassphrase(object):
    @pytest.mark.parametrize('value', ['correct horse', b'correct horse', bytearray(b'correct horse')],
                             ids=['str', 'bytes', 'bytearray'])
    def test_value(self, value):
        pw = Passphrase(value)
        assert bytes(pw) == b'correct horse'
        assert len(pw) == 13
        assert not pw.is_empty
        assert 'set' in repr(pw)

    def test_utf8(self):
        assert bytes(Passphrase('héllo')) == 'héllo'.encode('utf-8')

    def test_empty(self):
        pw = Passphrase.empty()
        assert pw.is_empty
        assert pw == Passphrase(b'')
        assert 'empty' in repr(pw)

    def test_clear(self):
        pw = Passphrase('secret')
        pw.clear()

        assert pw.is_cleared
        assert 'cleared' in repr(pw)
        for op in (bytes, len, lambda p: p.is_empty, lambda p: p.copy()):
            with pytest.raises(PassphraseFailure):
                op(pw)

    def test_copy_is_independent(self):
        pw = Passphrase('secret')
        cp = pw.copy()
        pw.clear()

        assert bytes(cp) == b'secret'

    def test_context_manager(self):
        with Passphrase('secret') as pw:
            assert bytes(pw) == b'secret'

        assert pw.is_cleared

    def test_not_hashable(self):
        with pytest.raises(TypeError):
            hash(Passphrase('secret'))

    @pytest.mark.parametrize('value', [1234, ['a']], ids=['int', 'list'])
    def test_invalid(self, value):
        with pytest.raises(TypeError):
            Passphrase(value)


class TestEncryptionConfig(object):
    def test_defaults(self):
        cfg = EncryptionConfig()
        assert cfg.armor
        assert cfg.integrity_protection
        assert cfg.check() == cfg

    def test_normalizes(self):
        cfg = EncryptionConfig(hash_algorithm=0x0A, symmetric_algorithm=0x07, compression=0x00).check()

        assert cfg.hash_algorithm is HashAlgorithm.SHA512
        assert cfg.symmetric_algorithm is SymmetricKeyAlgorithm.AES128
        assert cfg.compression is CompressionAlgorithm.Uncompressed

    @pytest.mark.parametrize('kwargs', [
        {'hash_algorithm': HashAlgorithm.MD5},
        {'hash_algorithm': HashAlgorithm.SHA1},
        {'hash_algorithm': HashAlgorithm.RIPEMD160},
        {'hash_algorithm': 0x63},
        {'symmetric_algorithm': SymmetricKeyAlgorithm.CAST5},
        {'symmetric_algorithm': 0x63},
        {'compression': 0x63},
    ], ids=['md5', 'sha1', 'ripemd160', 'unknown-hash', 'cast5', 'unknown-cipher', 'unknown-compression'])
    def test_unsupported(self, kwargs):
        with pytest.raises(UnsupportedAlgorithm):
            EncryptionConfig(**kwargs).check()

    @pytest.mark.parametrize('cipher', [SymmetricKeyAlgorithm.IDEA, SymmetricKeyAlgorithm.Plaintext],
                             ids=['idea', 'plaintext'])
    def test_insecure(self, cipher):
        with pytest.raises(PGPInsecureCipherError):
            EncryptionConfig(symmetric_algorithm=cipher).check()

    def test_buffer_size(self):
        with pytest.raises(ValueError):
            EncryptionConfig(buffer_size=0).check()


class TestKeyringConfig(object):
    def test_unprotected(self):
        kc = KeyringConfig.with_unprotected_keys()

        assert len(kc.public_keyring) == 0
        assert len(kc.secret_keyring) == 0
        assert not kc.is_protected
        assert kc.passphrase_for(None).is_empty

    def test_with_password(self):
        pub, sec = PGPKeyring(), PGPKeyring()
        pw = Passphrase('secret')
        kc = KeyringConfig.with_password(pub, sec, pw)
        pw.clear()

        assert kc.public_keyring is pub
        assert kc.secret_keyring is sec
        assert kc.is_protected
        assert 'protected' in repr(kc)

        # each caller gets its own copy
        first = kc.passphrase_for(None)
        first.clear()
        assert bytes(kc.passphrase_for(None)) == b'secret'

    def test_with_empty_password(self):
        kc = KeyringConfig.with_password(None, None, Passphrase.empty())
        assert not kc.is_protected

    def test_with_str_password(self):
        kc = KeyringConfig.with_password(None, None, 'secret')
        assert bytes(kc.passphrase_for(None)) == b'secret'
