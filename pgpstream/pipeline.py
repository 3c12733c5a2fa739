""" pipeline.py

Streaming sign-then-encrypt.
"""
import contextlib
import logging
import time

from typing import BinaryIO, Union

from .config import EncryptionConfig
from .config import KeyringConfig

from .constants import SignatureType

from .errors import AmbiguousSigningKey
from .errors import IOFailure
from .errors import KeyResolutionError
from .errors import NoEncryptionKeyFound
from .errors import SigningKeyNotFound

from .packet import PKESessionKeyV3

from .pgp import PGPKey
from .pgp import PGPSignature

from .streams import ArmorWriter
from .streams import CompressedDataWriter
from .streams import DEFAULT_CHUNK_SIZE
from .streams import EncryptedDataWriter
from .streams import LiteralDataWriter

__all__ = ['SignEncryptPipeline']

logger = logging.getLogger(__name__)


class SignEncryptPipeline(object):
    """
    Signs a stream and encrypts it to one recipient in a single pass. The output is one OpenPGP message::

        [armor]
          Public-Key Encrypted Session Key
          Sym. Encrypted Integrity Protected Data
            Compressed Data
              One-Pass Signature
              Literal Data
              Signature

    The signer is found in the secret key ring of ``keyring_config`` by a substring of its User ID, and must
    match exactly one key. ``recipient`` is a :py:obj:`~pgpstream.pgp.PGPKey`, or a User ID substring looked up
    the same way in the public key ring.

    All keys are resolved, and the signer's passphrase is checked, when the pipeline is created. Nothing is
    kept between calls to :py:meth:`encrypt_and_sign`, so one pipeline can be used for many messages.

    :raises: :py:exc:`~pgpstream.errors.NoEncryptionKeyFound` if the recipient has no key usable for encryption
    :raises: :py:exc:`~pgpstream.errors.SigningKeyNotFound` if no secret key matches ``signer_uid``
    :raises: :py:exc:`~pgpstream.errors.AmbiguousSigningKey` if more than one secret key matches ``signer_uid``
    :raises: :py:exc:`~pgpstream.errors.WrongPassphrase` if the configured passphrase does not unlock the signer
    """
    def __init__(self, keyring_config: KeyringConfig, recipient: Union[PGPKey, str], signer_uid: str,
                 config: EncryptionConfig = EncryptionConfig()) -> None:
        super().__init__()
        self._keyring_config = keyring_config
        self._config = config.check()

        self._recipient = self._resolve_recipient(recipient)
        self._encryption_key = self._recipient.encryption_key()
        if self._encryption_key is None:
            raise NoEncryptionKeyFound("Key {:s} has no key that may be used for encryption"
                                       "".format(self._recipient.fingerprint.keyid))

        self._signer = self._resolve_signer(signer_uid)
        self._signing_key = self._signer.signing_key()
        if self._signing_key is None:
            raise SigningKeyNotFound("Key {:s} has no key that may be used for signing"
                                     "".format(self._signer.fingerprint.keyid))

        uid = next(iter(self._signer.userids), None)
        self._signer_user = uid.userid if uid is not None else None

        logger.debug("encrypting to %s, signing with %s", self._encryption_key.fingerprint.keyid,
                     self._signing_key.fingerprint.keyid)

        # fail now rather than after the input has been consumed
        with self._unlocked_signer():
            pass

    @property
    def config(self) -> EncryptionConfig:
        return self._config

    @property
    def encryption_key(self) -> PGPKey:
        """The recipient's key (primary or subkey) the session key is encrypted to."""
        return self._encryption_key

    @property
    def signing_key(self) -> PGPKey:
        """The signer's key (primary or subkey) that makes the signature."""
        return self._signing_key

    def _resolve_recipient(self, recipient):
        if isinstance(recipient, PGPKey):
            return recipient.pubkey

        matches = self._keyring_config.public_keyring.get_keyrings(recipient)
        if not matches:
            raise NoEncryptionKeyFound("No public key ring found for UID '{:s}'".format(recipient))

        if len(matches) > 1:
            raise KeyResolutionError("Multiple public key rings found for UID '{:s}'".format(recipient))

        return matches[0]

    def _resolve_signer(self, signer_uid):
        matches = [key for key in self._keyring_config.secret_keyring.get_keyrings(signer_uid) if not key.is_public]
        if not matches:
            raise SigningKeyNotFound("No secret key ring found for UID '{:s}'".format(signer_uid))

        if len(matches) > 1:
            raise AmbiguousSigningKey("Multiple secret key rings found for UID '{:s}': {:s}".format(
                signer_uid, ', '.join(key.fingerprint.keyid for key in matches)))

        return matches[0]

    @contextlib.contextmanager
    def _unlocked_signer(self):
        if not self._signer.is_protected:
            yield self._signer
            return

        passphrase = self._keyring_config.passphrase_for(self._signer)
        try:
            with self._signer.unlock(passphrase):
                yield self._signer

        finally:
            passphrase.clear()

    @contextlib.contextmanager
    def _armored(self, outstream):
        if not self._config.armor:
            yield outstream
            return

        with ArmorWriter(outstream, "MESSAGE") as armored:
            yield armored

    def encrypt_and_sign(self, instream: BinaryIO, outstream: BinaryIO) -> int:
        """
        Read ``instream`` to its end and write the signed and encrypted message to ``outstream``.
        ``outstream`` is closed when this returns, whether or not it succeeded.

        :returns: the number of plaintext octets read
        :raises: :py:exc:`~pgpstream.errors.IOFailure` if reading or writing failed
        """
        started = time.perf_counter()
        failed = True
        try:
            nbytes = self._sign_then_encrypt(instream, outstream)
            failed = False

        except OSError as ex:
            logger.error("encrypt_and_sign failed: %s", ex)
            raise IOFailure(str(ex)) from ex

        except Exception as ex:
            logger.error("encrypt_and_sign failed: %r", ex)
            raise

        finally:
            self._close(outstream, failed)

        logger.info("encrypt_and_sign: %d bytes in %.3fs", nbytes, time.perf_counter() - started)
        return nbytes

    def _close(self, outstream, failed):
        try:
            outstream.close()

        except OSError as ex:
            if failed:
                # the original error is the one that propagates
                logger.warning("suppressed error while closing the output: %s", ex)
                return
            raise IOFailure(str(ex)) from ex

    def _sign_then_encrypt(self, instream, outstream):
        cfg = self._config

        session_key = cfg.symmetric_algorithm.gen_key()
        pkesk = PKESessionKeyV3()
        pkesk.encrypt_sk(self._encryption_key._key, cfg.symmetric_algorithm, session_key)

        # the one-pass packet announces what the trailing signature will be
        onepass = PGPSignature.new(SignatureType.BinaryDocument, self._signing_key.key_algorithm,
                                   cfg.hash_algorithm, self._signing_key.fingerprint).make_onepass()
        hashctx = cfg.hash_algorithm.hasher
        nbytes = 0

        with self._armored(outstream) as sink:
            sink.write(bytes(pkesk))

            with EncryptedDataWriter(sink, session_key, cfg.symmetric_algorithm, cfg.integrity_protection,
                                     DEFAULT_CHUNK_SIZE) as encrypted:
                del session_key

                with CompressedDataWriter(encrypted, cfg.compression, DEFAULT_CHUNK_SIZE) as compressed:
                    compressed.write(bytes(onepass))

                    with LiteralDataWriter(compressed, chunk_size=DEFAULT_CHUNK_SIZE) as literal:
                        for chunk in iter(lambda: instream.read(cfg.buffer_size), b''):
                            literal.write(chunk)
                            hashctx.update(chunk)
                            nbytes += len(chunk)

                    # the key stays locked while the input is read; it is unlocked only to produce the signature
                    with self._unlocked_signer():
                        sig = self._signing_key.sign(hashctx, hash=cfg.hash_algorithm, user=self._signer_user)

                    compressed.write(bytes(sig))

        return nbytes
