#!/usr/bin/env python3
# PYTHON_ARGCOMPLETE_OK
'''Stateless OpenPGP command line for pgpstream

Implements the sop verbs that map onto the streaming sign-then-encrypt pipeline:
generate-key, extract-cert, encrypt (signing is mandatory) and decrypt.
Every other verb is reported as unsupported by the sop base class.
'''

import io
import logging
import packaging.version
from importlib import metadata

from datetime import timezone
from typing import List, Optional, MutableMapping, Dict, Tuple
from argparse import Namespace

import sop

from .config import EncryptionConfig
from .config import KeyringConfig
from .constants import KeyFlags
from .errors import KeyResolutionError
from .errors import PassphraseFailure
from .errors import PGPDecryptionError
from .generation import KeyRingBuilder
from .keyspec import KeySpecBuilder
from .keyspec import KeyType
from .passphrase import Passphrase
from .pgp import PGPKey
from .pgp import PGPKeyring
from .pipeline import SignEncryptPipeline
from .reader import decrypt_and_verify
from .types import Armorable


class _Output(io.BytesIO):
    # the pipeline closes its output; keep what was written
    value: bytes = b''

    def close(self) -> None:
        if not self.closed:
            self.value = self.getvalue()
        super().close()


class SOPStream(sop.StatelessOpenPGP):
    def __init__(self) -> None:
        self.pgpstream_version = packaging.version.Version(metadata.version('pgpstream'))
        super().__init__(name='sopstream', version=f'{self.pgpstream_version}',
                         backend=f'pgpstream {self.pgpstream_version}',
                         description=f'Stateless OpenPGP using pgpstream {self.pgpstream_version}')

    def _maybe_armor(self, armor: bool, data: Armorable) -> bytes:
        if (armor):
            return str(data).encode('ascii')
        else:
            return bytes(data)

    def _get_certs(self, vals: MutableMapping[str, bytes]) -> MutableMapping[str, PGPKey]:
        certs: Dict[str, PGPKey] = {}
        for handle, data in vals.items():
            cert: PGPKey
            cert, _ = PGPKey.from_blob(data)
            if not cert.is_public:
                raise sop.SOPInvalidDataType(f'cert {handle} is not an OpenPGP certificate (maybe secret key?)')
            certs[handle] = cert
        return certs

    def _get_keys(self, vals: MutableMapping[str, bytes]) -> MutableMapping[str, PGPKey]:
        keys: Dict[str, PGPKey] = {}
        for handle, data in vals.items():
            key: PGPKey
            key, _ = PGPKey.from_blob(data)
            if key.is_public:
                raise sop.SOPInvalidDataType(f'key {handle} is not an OpenPGP transferable secret key (maybe certificate?)')
            keys[handle] = key
        return keys

    def _human_readable(self, handle: str, password: bytes) -> Passphrase:
        try:
            pstring = password.decode(encoding='utf-8')
        except UnicodeDecodeError:
            raise sop.SOPPasswordNotHumanReadable(f'Password in {handle} was not UTF-8')
        return Passphrase(pstring.strip())

    def _unlocking_passphrase(self, seckey: PGPKey, keyhandle: str,
                              keypasswords: MutableMapping[str, bytes]) -> Passphrase:
        if not seckey.is_protected:
            return Passphrase.empty()

        # try all passphrases in map:
        for handle, pw in keypasswords.items():
            for attempt in (self._human_readable(handle, pw), Passphrase(pw)):
                try:
                    with seckey.unlock(attempt):
                        return attempt
                except PassphraseFailure:
                    pass

        err: str
        if len(keypasswords) == 0:
            err = "; no passwords provided"
        elif len(keypasswords) == 1:
            err = "by the provided password"
        else:
            err = f"by any of the {len(keypasswords)} passwords provided"
        raise sop.SOPKeyIsProtected(f"Key found at {keyhandle} could not be unlocked {err}.")

    def generate_key(self, armor: bool = True, uids: List[str] = [],
                     keypassword: Optional[bytes] = None,
                     **kwargs: Namespace) -> bytes:
        self.raise_on_unknown_options(**kwargs)
        if not uids:
            raise sop.SOPMissingRequiredArgument('sopstream needs a User ID to generate a key')
        if len(uids) > 1:
            raise sop.SOPUnsupportedOption('sopstream generates keys with exactly one User ID')

        master = KeySpecBuilder(KeyType.eddsa()) \
            .allow_key_to_be_used_to(KeyFlags.Certify, KeyFlags.Sign) \
            .with_default_algorithms() \
            .build()
        encryption = KeySpecBuilder(KeyType.cv25519()) \
            .allow_key_to_be_used_to(KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage) \
            .with_default_algorithms() \
            .build()

        stage = KeyRingBuilder().with_master_key(master).with_subkey(encryption).with_primary_user_id(uids[0])
        if keypassword is not None:
            config = stage.with_passphrase(self._human_readable('--with-key-password', keypassword)).build()
        else:
            config = stage.without_passphrase().build()

        seckey = next(iter(config.secret_keyring))
        return self._maybe_armor(armor, seckey)

    def extract_cert(self,
                     key: bytes = b'',
                     armor: bool = True,
                     **kwargs: Namespace) -> bytes:
        self.raise_on_unknown_options(**kwargs)
        seckey, _ = PGPKey.from_blob(key)
        return self._maybe_armor(armor, seckey.pubkey)

    def encrypt(self,
                data: bytes,
                literaltype: sop.SOPLiteralDataType = sop.SOPLiteralDataType.binary,
                armor: bool = True,
                passwords: MutableMapping[str, bytes] = {},
                signers: MutableMapping[str, bytes] = {},
                keypasswords: MutableMapping[str, bytes] = {},
                recipients: MutableMapping[str, bytes] = {},
                **kwargs: Namespace) -> bytes:
        self.raise_on_unknown_options(**kwargs)
        if literaltype is not sop.SOPLiteralDataType.binary:
            raise sop.SOPUnsupportedOption(f'sopstream encrypt --as with value {literaltype}')
        if passwords:
            raise sop.SOPUnsupportedOption('sopstream does not support --with-password')
        if not signers:
            raise sop.SOPMissingRequiredArgument('sopstream always signs; needs one OpenPGP secret key with --sign-with')
        if len(signers) > 1:
            raise sop.SOPUnsupportedOption('sopstream signs with exactly one key')
        if len(recipients) != 1:
            raise sop.SOPMissingRequiredArgument('sopstream encrypts to exactly one OpenPGP certificate')

        (signerhandle, seckey), = self._get_keys(signers).items()
        cert: PGPKey = next(iter(self._get_certs(recipients).values()))
        if not seckey.userids:
            raise sop.SOPInvalidDataType(f'key {signerhandle} has no User ID to sign as')

        passphrase = self._unlocking_passphrase(seckey, signerhandle, keypasswords)
        try:
            keyring_config = KeyringConfig.with_password(PGPKeyring(cert), PGPKeyring(seckey), passphrase)
        finally:
            passphrase.clear()

        try:
            pipeline = SignEncryptPipeline(keyring_config, cert, seckey.userids[0].userid,
                                           EncryptionConfig(armor=armor))
        except KeyResolutionError as e:
            raise sop.SOPCertCannotEncrypt(str(e))

        out = _Output()
        pipeline.encrypt_and_sign(io.BytesIO(data), out)
        return out.value

    def _check_sigs(self,
                    certs: MutableMapping[str, PGPKey],
                    plaintext: bytes,
                    signatures: list,
                    start=None,
                    end=None) -> List[sop.SOPSigResult]:
        sigs: List[sop.SOPSigResult] = []
        for signer, cert in certs.items():
            for sig in signatures:
                if sig.signer not in {cert.fingerprint.keyid} | set(cert.subkeys):
                    continue
                for goodsig in cert.verify(plaintext, sig).good_signatures:
                    sigtime = goodsig.signature.created
                    if sigtime.tzinfo is None:
                        sigtime = sigtime.replace(tzinfo=timezone.utc)
                    if start is None or sigtime >= start:
                        if end is None or sigtime <= end:
                            sigs += [sop.SOPSigResult(sigtime, goodsig.by.fingerprint, cert.fingerprint,
                                                      goodsig.signature.__repr__())]
        return sigs

    def decrypt(self,
                data: bytes,
                wantsessionkey: bool = False,
                sessionkeys: MutableMapping[str, sop.SOPSessionKey] = {},
                passwords: MutableMapping[str, bytes] = {},
                signers: MutableMapping[str, bytes] = {},
                start=None,
                end=None,
                keypasswords: MutableMapping[str, bytes] = {},
                secretkeys: MutableMapping[str, bytes] = {},
                **kwargs: Namespace) -> Tuple[bytes, List[sop.SOPSigResult], Optional[sop.SOPSessionKey]]:
        self.raise_on_unknown_options(**kwargs)
        if wantsessionkey:
            raise sop.SOPUnsupportedOption('sopstream does not support --session-key-out')
        if sessionkeys:
            raise sop.SOPUnsupportedOption('sopstream does not support --with-session-key')
        if passwords:
            raise sop.SOPUnsupportedOption('sopstream does not support --with-password')
        if not secretkeys:
            raise sop.SOPMissingRequiredArgument('needs at least one OpenPGP secret key to decrypt with')

        certs: MutableMapping[str, PGPKey] = self._get_certs(signers) if signers else {}
        seckeys: MutableMapping[str, PGPKey] = self._get_keys(secretkeys)

        for handle, seckey in seckeys.items():
            try:
                passphrase = self._unlocking_passphrase(seckey, handle, keypasswords)
            except sop.SOPKeyIsProtected as e:
                logging.warning(e)
                continue

            try:
                result = decrypt_and_verify(data, seckey, passphrase if seckey.is_protected else None)
            except PGPDecryptionError:
                logging.warning(f'could not decrypt with {seckey.fingerprint}')
                continue
            finally:
                passphrase.clear()

            sigs = self._check_sigs(certs, result.plaintext, result.signatures, start, end) if certs else []
            return (result.plaintext, sigs, None)

        raise sop.SOPCouldNotDecrypt('could not find anything capable of decryption')


def main() -> None:
    sop = SOPStream()
    sop.dispatch()


if __name__ == '__main__':
    main()
