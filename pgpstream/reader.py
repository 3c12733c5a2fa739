""" reader.py

Decrypts and verifies the messages written by :py:obj:`~pgpstream.pipeline.SignEncryptPipeline`.
The whole message is held in memory.
"""
import contextlib
import logging

from typing import List, NamedTuple, Optional, Union

from .errors import PassphraseFailure
from .errors import PGPDecryptionError
from .errors import PGPError

from .packet import CompressedData
from .packet import IntegrityProtectedSKEDataV1
from .packet import LiteralData
from .packet import OnePassSignatureV3
from .packet import Packet
from .packet import PKESessionKeyV3
from .packet import SignatureV4
from .packet import SKEData

from .passphrase import Passphrase

from .pgp import PGPKey
from .pgp import PGPSignature

from .types import Armorable
from .types import SignatureVerification

__all__ = ['DecryptionResult',
           'decrypt_and_verify']

logger = logging.getLogger(__name__)


class DecryptionResult(NamedTuple):
    """
    :param plaintext: the contents of the literal data packet
    :param signatures: every signature that followed the literal data, in message order
    :param verified: the outcome of verifying ``signatures``, or ``None`` if no key was given to verify with
    """
    plaintext: bytes
    signatures: List[PGPSignature]
    verified: Optional[SignatureVerification]


def _packets(data):
    data = bytearray(data)
    while len(data) > 0:
        yield Packet(data)


@contextlib.contextmanager
def _unlocked(key, passphrase):
    if not key.is_protected:
        yield key
        return

    if passphrase is None:
        raise PassphraseFailure("Key {:s} is protected; a passphrase is required".format(key.fingerprint.keyid))

    with key.unlock(passphrase):
        yield key


def _session_key(pkesks, secret_key, passphrase):
    with _unlocked(secret_key, passphrase):
        for key in secret_key.ring_order():
            for pkesk in pkesks:
                if pkesk.encrypter == key.fingerprint.keyid:
                    logger.debug("session key is encrypted to %s", key.fingerprint.keyid)
                    return pkesk.decrypt_sk(key._key)

    raise PGPDecryptionError("Message is not encrypted to key {:s}".format(secret_key.fingerprint.keyid))


def decrypt_and_verify(data: Union[str, bytes, bytearray], secret_key: PGPKey,
                       passphrase: Optional[Union[Passphrase, str, bytes]] = None,
                       verify_with: Optional[PGPKey] = None) -> DecryptionResult:
    """
    Decrypt a public-key encrypted, signed message.

    :param data: the message, ASCII-armored or binary
    :param secret_key: a private key whose primary key or a subkey the message was encrypted to
    :param passphrase: unlocks ``secret_key`` if it is protected
    :param verify_with: the signer's key; when given, every signature is verified with it
    :raises: :py:exc:`~pgpstream.errors.PGPDecryptionError` if the message can not be decrypted, or has been
             modified
    :raises: :py:exc:`~pgpstream.errors.PGPError` if the message is not laid out as a signed message
    """
    if secret_key.is_public:
        raise PGPError("Decryption requires a private key")

    body = Armorable.ascii_unarmor(data)['body']

    pkesks = []
    encrypted = None
    for pkt in _packets(body):
        if isinstance(pkt, PKESessionKeyV3):
            pkesks.append(pkt)

        elif isinstance(pkt, (IntegrityProtectedSKEDataV1, SKEData)) and encrypted is None:
            encrypted = pkt

    if encrypted is None:
        raise PGPError("Message has no encrypted data")

    if not pkesks:
        raise PGPError("Message has no public-key encrypted session key")

    symalg, symkey = _session_key(pkesks, secret_key, passphrase)
    if isinstance(encrypted, SKEData):
        logger.debug("message is not integrity protected")

    plain = list(_packets(encrypted.decrypt(symkey, symalg)))
    del symkey

    # a compressed layer holds the rest of the message
    while len(plain) == 1 and isinstance(plain[0], CompressedData):
        plain = plain[0].packets

    onepasses = [pkt for pkt in plain if isinstance(pkt, OnePassSignatureV3)]
    literal = next((pkt for pkt in plain if isinstance(pkt, LiteralData)), None)
    signatures = [PGPSignature() | pkt for pkt in plain if isinstance(pkt, SignatureV4)]

    if literal is None:
        raise PGPError("Message has no literal data")

    # one-pass signatures nest, so the first one announced is the last one written
    if [op.signer for op in reversed(onepasses)] != [sig.signer for sig in signatures]:
        raise PGPError("One-pass signatures do not match the signatures that follow the literal data")

    plaintext = bytes(literal.contents)
    verified = None
    if verify_with is not None:
        verified = SignatureVerification()
        for sig in signatures:
            if sig.signer in {verify_with.fingerprint.keyid} | set(verify_with.subkeys):
                verified &= verify_with.verify(plaintext, sig)

            else:
                verified.add_sigsubj(sig, verify_with, plaintext, False)

    return DecryptionResult(plaintext, signatures, verified)
