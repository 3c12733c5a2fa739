""" test staged key ring generation
"""
import pytest

from pgpstream.config import KeyringConfig
from pgpstream.constants import EllipticCurveOID
from pgpstream.constants import GenerationFailureKind
from pgpstream.constants import HashAlgorithm
from pgpstream.constants import KeyFlags
from pgpstream.constants import PubKeyAlgorithm
from pgpstream.constants import RsaLength
from pgpstream.constants import SymmetricKeyAlgorithm
from pgpstream.errors import InvalidKeySpec
from pgpstream.errors import KeyGenerationFailure
from pgpstream.errors import PassphraseFailure
from pgpstream.errors import PGPError
from pgpstream.errors import WrongPassphrase
from pgpstream.generation import BuildStage
from pgpstream.generation import KeyRingBuilder
from pgpstream.generation import PassphraseStage
from pgpstream.generation import SubkeyStage
from pgpstream.keyspec import KeySpecBuilder
from pgpstream.keyspec import KeyType
from pgpstream.passphrase import Passphrase
from pgpstream.pgp import PGPKey


def _spec(key_type, *flags):
    return KeySpecBuilder(key_type).allow_key_to_be_used_to(*flags).with_default_algorithms().build()


def _only(keyring):
    keys = list(keyring)
    assert len(keys) == 1
    return keys[0]


@pytest.fixture(scope='module')
def rsa_keyring():
    return KeyRingBuilder.simple_rsa_keyring('Alice <alice@example.com>', RsaLength.RSA_2048)


@pytest.fixture(scope='module')
def ecc_keyring():
    return KeyRingBuilder.simple_ecc_keyring(b'Bob <bob@example.com>')


@pytest.fixture(scope='module')
def protected_keyring():
    return KeyRingBuilder() \
        .with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify, KeyFlags.Sign)) \
        .with_subkey(_spec(KeyType.cv25519(), KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage)) \
        .with_primary_user_id('Carol <carol@example.com>') \
        .with_passphrase(Passphrase('correct horse')) \
        .build()


class TestStages(object):
    def test_stage_types(self):
        stage = KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify))
        assert isinstance(stage, SubkeyStage)

        stage = stage.with_subkey(_spec(KeyType.cv25519(), KeyFlags.EncryptStorage))
        assert isinstance(stage, SubkeyStage)
        assert len(stage.request.specs) == 2

        stage = stage.with_primary_user_id('Dave')
        assert isinstance(stage, PassphraseStage)
        assert stage.request.user_id == 'Dave'

        stage = stage.without_passphrase()
        assert isinstance(stage, BuildStage)
        assert stage.request.passphrase.is_empty

    def test_stages_do_not_share_state(self):
        base = KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify))
        one = base.with_subkey(_spec(KeyType.cv25519(), KeyFlags.EncryptStorage))

        assert len(base.request.specs) == 1
        assert len(one.request.specs) == 2

    def test_master_must_certify(self):
        with pytest.raises(InvalidKeySpec):
            KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Sign))

    @pytest.mark.parametrize('spec', [None, KeyType.eddsa(), 'eddsa'], ids=['none', 'keytype', 'str'])
    def test_not_a_spec(self, spec):
        with pytest.raises(InvalidKeySpec):
            KeyRingBuilder().with_master_key(spec)

        stage = KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify))
        with pytest.raises(InvalidKeySpec):
            stage.with_subkey(spec)

    @pytest.mark.parametrize('uid', ['', b'', b'\xff\xfe', 42], ids=['empty', 'empty-bytes', 'not-utf8', 'int'])
    def test_invalid_user_id(self, uid):
        stage = KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify))
        with pytest.raises(InvalidKeySpec):
            stage.with_primary_user_id(uid)

    def test_bytes_user_id(self):
        stage = KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify))
        assert stage.with_primary_user_id('Zoë'.encode('utf-8')).request.user_id == 'Zoë'

    def test_cleared_passphrase(self):
        stage = KeyRingBuilder().with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify)) \
            .with_primary_user_id('Erin')
        pw = Passphrase('secret')
        pw.clear()

        with pytest.raises(PassphraseFailure):
            stage.with_passphrase(pw)


class TestPresets(object):
    def test_rsa(self, rsa_keyring):
        assert isinstance(rsa_keyring, KeyringConfig)
        assert not rsa_keyring.is_protected

        public = _only(rsa_keyring.public_keyring)
        secret = _only(rsa_keyring.secret_keyring)

        assert public.is_public
        assert not secret.is_public
        assert not secret.is_protected
        assert public.fingerprint == secret.fingerprint
        assert list(public.subkeys) == list(secret.subkeys)

        assert secret.key_algorithm is PubKeyAlgorithm.RSAEncryptOrSign
        assert secret.key_size == 2048
        assert secret.usage_flags == {KeyFlags.Certify, KeyFlags.Sign}
        assert secret.userids[0].userid == 'Alice <alice@example.com>'

        encryption, authentication = secret.subkeys.values()
        assert encryption.usage_flags == {KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage}
        assert authentication.usage_flags == {KeyFlags.Authentication}
        assert all(sk.key_size == 2048 for sk in (encryption, authentication))

    def test_ecc(self, ecc_keyring):
        secret = _only(ecc_keyring.secret_keyring)

        assert secret.key_algorithm is PubKeyAlgorithm.ECDSA
        assert secret.key_size is EllipticCurveOID.NIST_P256
        assert secret.userids[0].userid == 'Bob <bob@example.com>'

        encryption, authentication = secret.subkeys.values()
        assert encryption.key_algorithm is PubKeyAlgorithm.ECDH
        assert encryption.key_size is EllipticCurveOID.NIST_P256
        assert authentication.key_algorithm is PubKeyAlgorithm.ECDSA
        assert authentication.usage_flags == {KeyFlags.Authentication}

    @pytest.mark.parametrize('keyring', ['rsa_keyring', 'ecc_keyring'])
    def test_self_signatures(self, request, keyring):
        public = _only(request.getfixturevalue(keyring).public_keyring)

        assert public.verify(public)

        selfsig = public.userids[0].selfsig
        assert selfsig.is_primary_uid
        assert selfsig.hash_algorithm is HashAlgorithm.SHA512
        assert selfsig.cipherprefs[0] is SymmetricKeyAlgorithm.AES256

    @pytest.mark.parametrize('keyring', ['rsa_keyring', 'ecc_keyring'])
    def test_usable_keys(self, request, keyring):
        secret = _only(request.getfixturevalue(keyring).secret_keyring)

        assert secret.signing_key() is secret
        assert secret.encryption_key() is list(secret.subkeys.values())[0]

    def test_lookup_by_user_id(self, rsa_keyring):
        assert len(rsa_keyring.secret_keyring.get_keyrings('alice@example.com')) == 1
        assert rsa_keyring.secret_keyring.get_keyrings('bob@example.com') == []

    def test_lookup_by_fingerprint(self, rsa_keyring):
        secret = _only(rsa_keyring.secret_keyring)
        subkey = list(secret.subkeys.values())[-1]

        assert rsa_keyring.secret_keyring.by_fingerprint(secret.fingerprint) is secret
        assert rsa_keyring.secret_keyring.by_fingerprint(subkey.fingerprint.keyid) is secret
        assert subkey.fingerprint.keyid in rsa_keyring.public_keyring

    def test_distinct_keys(self, ecc_keyring):
        other = _only(KeyRingBuilder.simple_ecc_keyring('Bob <bob@example.com>').secret_keyring)
        assert other.fingerprint != _only(ecc_keyring.secret_keyring).fingerprint


class TestProtected(object):
    def test_protected(self, protected_keyring):
        assert protected_keyring.is_protected

        secret = _only(protected_keyring.secret_keyring)
        assert secret.is_protected
        assert not secret.is_unlocked
        assert all(sk.is_protected for sk in secret.subkeys.values())

        assert not _only(protected_keyring.public_keyring).is_protected

    def test_unlock(self, protected_keyring):
        secret = _only(protected_keyring.secret_keyring)

        with secret.unlock(protected_keyring.passphrase_for(secret)):
            assert secret.is_unlocked
            assert all(sk.is_unlocked for sk in secret.subkeys.values())

        assert not secret.is_unlocked

    def test_wrong_passphrase(self, protected_keyring):
        secret = _only(protected_keyring.secret_keyring)

        with pytest.raises(WrongPassphrase):
            with secret.unlock(Passphrase('wrong horse')):
                pass  # pragma: no cover

    def test_reload(self, protected_keyring):
        secret = _only(protected_keyring.secret_keyring)
        reloaded, _ = PGPKey.from_blob(str(secret))

        assert reloaded.fingerprint == secret.fingerprint
        assert reloaded.is_protected
        with reloaded.unlock('correct horse'):
            assert reloaded.is_unlocked

    def test_passphrase_cleared(self):
        pw = Passphrase('correct horse')
        KeyRingBuilder() \
            .with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify)) \
            .with_primary_user_id('Frank') \
            .with_passphrase(pw) \
            .build()

        assert pw.is_cleared


class TestBuild(object):
    def test_empty_passphrase_is_no_passphrase(self):
        without = _only(self._stage().build().secret_keyring)
        empty = _only(self._stage(Passphrase.empty()).build().secret_keyring)

        assert not without.is_protected
        assert not empty.is_protected
        assert not any(sk.is_protected for sk in empty.subkeys.values())

    def _stage(self, passphrase=None):
        stage = KeyRingBuilder() \
            .with_master_key(_spec(KeyType.eddsa(), KeyFlags.Certify, KeyFlags.Sign)) \
            .with_subkey(_spec(KeyType.cv25519(), KeyFlags.EncryptStorage)) \
            .with_primary_user_id('Grace')

        if passphrase is None:
            return stage.without_passphrase()
        return stage.with_passphrase(passphrase)

    def test_build_once(self):
        stage = self._stage()
        stage.build()

        with pytest.raises(PGPError):
            stage.build()

    def test_inherited_subpackets(self):
        subkey = KeySpecBuilder(KeyType.ecdsa()) \
            .allow_key_to_be_used_to(KeyFlags.Authentication) \
            .with_inherited_subpackets() \
            .build()

        config = KeyRingBuilder() \
            .with_master_key(_spec(KeyType.ecdsa(), KeyFlags.Certify, KeyFlags.Sign)) \
            .with_subkey(subkey) \
            .with_primary_user_id('Heidi') \
            .without_passphrase() \
            .build()

        secret = _only(config.secret_keyring)
        # bound with the master key's flags, so a cross-signature is required and present
        sk = next(iter(secret.subkeys.values()))
        assert sk.usage_flags == {KeyFlags.Certify, KeyFlags.Sign}
        assert next(sk.self_signatures).embedded_signature is not None
        assert secret.pubkey.verify(secret.pubkey)

    def test_inherited_subpackets_incompatible(self):
        subkey = KeySpecBuilder(KeyType.ecdh()) \
            .allow_key_to_be_used_to(KeyFlags.EncryptCommunications) \
            .with_inherited_subpackets() \
            .build()

        stage = KeyRingBuilder().with_master_key(_spec(KeyType.ecdsa(), KeyFlags.Certify, KeyFlags.Sign))
        # an ECDH subkey cannot carry the master key's Certify and Sign flags
        with pytest.raises(InvalidKeySpec):
            stage.with_subkey(subkey)

    @pytest.mark.parametrize('exc,kind', [
        (ValueError("bad size"), GenerationFailureKind.InvalidParameters),
        (TypeError("bad type"), GenerationFailureKind.InvalidParameters),
        (NotImplementedError("no curve"), GenerationFailureKind.UnsupportedAlgorithm),
        (PGPError("refused"), GenerationFailureKind.PrimitiveRejected),
    ], ids=['ValueError', 'TypeError', 'NotImplementedError', 'PGPError'])
    def test_failure(self, monkeypatch, exc, kind):
        def new(cls, key_algorithm, key_size, created=None):
            raise exc

        monkeypatch.setattr(PGPKey, 'new', classmethod(new))
        pw = Passphrase('secret')
        stage = self._stage(pw)

        with pytest.raises(KeyGenerationFailure) as excinfo:
            stage.build()

        assert excinfo.value.kind is kind
        assert excinfo.value.__cause__ is exc
        assert pw.is_cleared
