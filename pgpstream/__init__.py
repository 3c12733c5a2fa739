""" pgpstream :: streaming OpenPGP sign-then-encrypt for Python
"""
from .config import EncryptionConfig
from .config import KeyringConfig
from .generation import KeyRingBuilder
from .keyspec import KeySpec
from .keyspec import KeySpecBuilder
from .keyspec import KeyType
from .passphrase import Passphrase
from .pgp import PGPKey
from .pgp import PGPKeyring
from .pgp import PGPSignature
from .pgp import PGPUID
from .pipeline import SignEncryptPipeline
from .reader import decrypt_and_verify

__all__ = ['constants',
           'errors',
           'EncryptionConfig',
           'KeyringConfig',
           'KeyRingBuilder',
           'KeySpec',
           'KeySpecBuilder',
           'KeyType',
           'Passphrase',
           'PGPKey',
           'PGPKeyring',
           'PGPSignature',
           'PGPUID',
           'SignEncryptPipeline',
           'decrypt_and_verify', ]
