""" generation.py

Staged generation of a master key and its subkeys.
"""
import logging

from typing import NamedTuple, Optional, Tuple, Union

from cryptography.exceptions import UnsupportedAlgorithm as _BackendUnsupportedAlgorithm

from .config import KeyringConfig

from .constants import EllipticCurveOID
from .constants import GenerationFailureKind
from .constants import HashAlgorithm
from .constants import KeyFlags
from .constants import RsaLength
from .constants import SymmetricKeyAlgorithm

from .errors import InvalidKeySpec
from .errors import KeyGenerationFailure
from .errors import PGPError
from .errors import UnsupportedAlgorithm

from .keyspec import KeySpec
from .keyspec import KeySpecBuilder
from .keyspec import KeyType
from .keyspec import _encryption_usage
from .keyspec import _signing_usage

from .passphrase import Passphrase

from .pgp import PGPKey
from .pgp import PGPKeyring
from .pgp import PGPUID

__all__ = ['KeyGenerationRequest',
           'KeyRingBuilder',
           'SubkeyStage',
           'PassphraseStage',
           'BuildStage']

logger = logging.getLogger(__name__)

# S2K hash for secret key protection
_protection_hash = HashAlgorithm.SHA1
_protection_cipher = SymmetricKeyAlgorithm.AES256
# every self-signature made during generation
_selfsig_hash = HashAlgorithm.SHA512


class KeyGenerationRequest(NamedTuple):
    """Everything collected by the builder stages. The master key spec is always ``specs[0]``."""
    specs: Tuple[KeySpec, ...] = ()
    user_id: Optional[str] = None
    passphrase: Optional[Passphrase] = None


class _Stage(object):
    def __init__(self, request: KeyGenerationRequest) -> None:
        super().__init__()
        self._request = request

    @property
    def request(self) -> KeyGenerationRequest:
        return self._request


class KeyRingBuilder(object):
    """
    Entry point for generating a key ring. Each stage only offers the calls that are legal next::

        config = KeyRingBuilder() \\
            .with_master_key(master_spec) \\
            .with_subkey(encryption_spec) \\
            .with_primary_user_id("Alice <alice@example.com>") \\
            .with_passphrase(Passphrase("correct horse")) \\
            .build()
    """
    def with_master_key(self, spec: KeySpec) -> 'SubkeyStage':
        if not isinstance(spec, KeySpec):
            raise InvalidKeySpec("Expected a KeySpec, got {!r}".format(spec))

        if not spec.can_certify:
            raise InvalidKeySpec("The master key must be allowed to certify")

        return SubkeyStage(KeyGenerationRequest(specs=(spec,)))

    @classmethod
    def simple_rsa_keyring(cls, uid: Union[str, bytes],
                           length: Union[RsaLength, int] = RsaLength.RSA_3072) -> KeyringConfig:
        """
        An unprotected key ring of three RSA keys of ``length`` bits: a master key for certifying and signing,
        an encryption subkey, and an authentication subkey.
        """
        key_type = KeyType.rsa(length)
        return cls._simple_keyring(uid, key_type, key_type, key_type)

    @classmethod
    def simple_ecc_keyring(cls, uid: Union[str, bytes]) -> KeyringConfig:
        """
        An unprotected key ring on NIST P-256: an ECDSA master key for certifying and signing, an ECDH
        encryption subkey, and an ECDSA authentication subkey.
        """
        return cls._simple_keyring(uid, KeyType.ecdsa(EllipticCurveOID.NIST_P256),
                                   KeyType.ecdh(EllipticCurveOID.NIST_P256),
                                   KeyType.ecdsa(EllipticCurveOID.NIST_P256))

    @classmethod
    def _simple_keyring(cls, uid, master_type, encryption_type, authentication_type):
        master = KeySpecBuilder(master_type) \
            .allow_key_to_be_used_to(KeyFlags.Certify, KeyFlags.Sign) \
            .with_default_algorithms() \
            .build()
        encryption = KeySpecBuilder(encryption_type) \
            .allow_key_to_be_used_to(KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage) \
            .with_default_algorithms() \
            .build()
        authentication = KeySpecBuilder(authentication_type) \
            .allow_key_to_be_used_to(KeyFlags.Authentication) \
            .with_default_algorithms() \
            .build()

        return cls() \
            .with_master_key(master) \
            .with_subkey(encryption) \
            .with_subkey(authentication) \
            .with_primary_user_id(uid) \
            .without_passphrase() \
            .build()


class SubkeyStage(_Stage):
    def with_subkey(self, spec: KeySpec) -> 'SubkeyStage':
        if not isinstance(spec, KeySpec):
            raise InvalidKeySpec("Expected a KeySpec, got {!r}".format(spec))

        if not spec.flags:
            raise InvalidKeySpec("A subkey must be allowed at least one usage")

        if spec.inherit_subpackets_from_master:
            # the subkey is bound with the master key's usage flags, which its algorithm must support
            usage = self._request.specs[0].flags
            if usage & _signing_usage and not spec.key_type.can_sign:
                raise InvalidKeySpec("{} subkey cannot inherit the master key usage {}".format(
                    spec.key_type, ', '.join(sorted(f.name for f in usage & _signing_usage))))

            if usage & _encryption_usage and not spec.key_type.can_encrypt:
                raise InvalidKeySpec("{} subkey cannot inherit the master key's encryption usage".format(spec.key_type))

        return SubkeyStage(self._request._replace(specs=self._request.specs + (spec,)))

    def with_primary_user_id(self, uid: Union[str, bytes]) -> 'PassphraseStage':
        """
        :param uid: the User ID of the self-certification, usually ``"Name (Comment) <email>"``.
                    ``bytes`` must be UTF-8.
        :raises: :py:exc:`~pgpstream.errors.InvalidKeySpec` if ``uid`` is empty or not text
        """
        if isinstance(uid, (bytes, bytearray)):
            try:
                uid = bytes(uid).decode('utf-8')

            except UnicodeDecodeError as ex:
                raise InvalidKeySpec("User ID is not valid UTF-8") from ex

        if not isinstance(uid, str):
            raise InvalidKeySpec("Expected a str User ID, got {:s}".format(type(uid).__name__))

        if not uid:
            raise InvalidKeySpec("User ID must not be empty")

        return PassphraseStage(self._request._replace(user_id=uid))


class PassphraseStage(_Stage):
    def with_passphrase(self, passphrase: Union[Passphrase, str, bytes]) -> 'BuildStage':
        """
        Protect every secret key with ``passphrase``. An empty passphrase is the same as
        :py:meth:`without_passphrase`. The passphrase is cleared once :py:meth:`BuildStage.build` returns.
        """
        if not isinstance(passphrase, Passphrase):
            passphrase = Passphrase(passphrase)

        # raises PassphraseFailure if it was already cleared
        passphrase.is_empty

        return BuildStage(self._request._replace(passphrase=passphrase))

    def without_passphrase(self) -> 'BuildStage':
        return self.with_passphrase(Passphrase.empty())


class BuildStage(_Stage):
    def __init__(self, request: KeyGenerationRequest) -> None:
        super().__init__(request)
        self._built = False

    def build(self) -> KeyringConfig:
        """
        Generate the keys.

        :returns: a :py:obj:`~pgpstream.config.KeyringConfig` holding one public and one secret key ring
        :raises: :py:exc:`~pgpstream.errors.KeyGenerationFailure` if any key could not be generated, bound,
                 or protected. No key ring is returned in that case.
        :raises: :py:exc:`~pgpstream.errors.PGPError` if called more than once
        """
        if self._built:
            raise PGPError("This key ring has already been built")
        self._built = True

        passphrase = self._request.passphrase
        try:
            return self._build(self._request)

        finally:
            passphrase.clear()

    def _build(self, request):
        master_spec, subkey_specs = request.specs[0], request.specs[1:]
        protect = not request.passphrase.is_empty

        try:
            master = _generate(master_spec)
            logger.debug("generated master key %s (%s)", master.fingerprint.keyid, master_spec.key_type)

            uid = PGPUID.new(request.user_id)
            master.add_uid(uid, hash=_selfsig_hash, primary=True, **master_spec.hashed_subpackets())
            logger.debug("certified user id on %s", master.fingerprint.keyid)

            for spec in subkey_specs:
                subkey = _generate(spec)
                prefs = master_spec.hashed_subpackets() if spec.inherit_subpackets_from_master \
                    else spec.hashed_subpackets()

                master.add_subkey(subkey, hash=_selfsig_hash, **prefs)
                logger.debug("bound subkey %s (%s) to %s", subkey.fingerprint.keyid, spec.key_type,
                             master.fingerprint.keyid)

            if protect:
                master.protect(request.passphrase, _protection_cipher, _protection_hash)
                logger.debug("protected secret keys of %s with %s", master.fingerprint.keyid,
                             _protection_cipher.name)

            public, secret = master.pubkey, master
            _reconcile_protection(secret, protect, request.passphrase)

        except KeyGenerationFailure:
            raise

        except (UnsupportedAlgorithm, _BackendUnsupportedAlgorithm, NotImplementedError) as ex:
            raise KeyGenerationFailure(str(ex), GenerationFailureKind.UnsupportedAlgorithm) from ex

        except (ValueError, TypeError) as ex:
            raise KeyGenerationFailure(str(ex), GenerationFailureKind.InvalidParameters) from ex

        except PGPError as ex:
            raise KeyGenerationFailure(str(ex), GenerationFailureKind.PrimitiveRejected) from ex

        if protect:
            return KeyringConfig.with_password(PGPKeyring(public), PGPKeyring(secret), request.passphrase)

        return KeyringConfig.with_unprotected_keys(PGPKeyring(public), PGPKeyring(secret))


def _generate(spec):
    if not spec.key_type.algorithm.can_gen:
        raise UnsupportedAlgorithm("Cannot generate {} keys".format(spec.key_type.algorithm.name))

    parameter = spec.key_type.parameter
    if isinstance(parameter, RsaLength):
        parameter = int(parameter)

    return PGPKey.new(spec.key_type.algorithm, parameter)


def _reconcile_protection(secret, protect, passphrase):
    # generation and protection are separate steps, so every secret subkey is checked against the
    # protection the primary key ended up with
    for subkey in secret.subkeys.values():
        if subkey.is_protected == protect:
            continue

        if not protect:
            raise KeyGenerationFailure("Subkey {:s} is protected, but no passphrase was given"
                                       "".format(subkey.fingerprint.keyid), GenerationFailureKind.PrimitiveRejected)

        logger.debug("protecting subkey %s left unprotected", subkey.fingerprint.keyid)
        subkey._key.protect(bytes(passphrase), _protection_cipher, _protection_hash)
