""" errors.py
"""

__all__ = ('PGPError',
           'PGPEncryptionError',
           'PGPDecryptionError',
           'PGPIncompatibleECPointFormatError',
           'PGPInsecureCipherError',
           'InvalidKeySpec',
           'KeyGenerationFailure',
           'KeyResolutionError',
           'NoEncryptionKeyFound',
           'SigningKeyNotFound',
           'AmbiguousSigningKey',
           'PassphraseFailure',
           'WrongPassphrase',
           'IOFailure',
           'UnsupportedAlgorithm',)


class PGPError(Exception):
    """Raised as a general error in pgpstream"""
    pass


class PGPEncryptionError(PGPError):
    """Raised when encryption fails"""
    pass


class PGPDecryptionError(PGPError):
    """Raised when decryption fails"""
    pass


class PGPIncompatibleECPointFormatError(PGPError):
    """Raised when the point format is incompatible with the elliptic curve"""
    pass


class PGPInsecureCipherError(PGPError):
    """Raised when a cipher known to be insecure is attempted to be used to encrypt data"""
    pass


class InvalidKeySpec(PGPError):
    """Raised when a key specification cannot describe a usable key"""
    pass


class KeyGenerationFailure(PGPError):
    """Raised when a key ring could not be generated"""
    def __init__(self, message, kind):
        super().__init__(message)
        #: a :py:obj:`~pgpstream.constants.GenerationFailureKind`
        self.kind = kind


class KeyResolutionError(PGPError):
    """Raised when a key required for an operation cannot be located"""
    pass


class NoEncryptionKeyFound(KeyResolutionError):
    """Raised when a key ring holds no encryption-capable key"""
    pass


class SigningKeyNotFound(KeyResolutionError):
    """Raised when no secret key ring matches the signer's user id"""
    pass


class AmbiguousSigningKey(KeyResolutionError):
    """Raised when more than one secret key ring matches the signer's user id"""
    pass


class PassphraseFailure(PGPDecryptionError):
    """Raised when a passphrase cannot be used"""
    pass


class WrongPassphrase(PassphraseFailure):
    """Raised when a passphrase does not unlock a secret key"""
    pass


class IOFailure(PGPError):
    """Raised when reading from or writing to a stream fails"""
    pass


class UnsupportedAlgorithm(PGPError):
    """Raised when an algorithm is not supported by the cryptographic backend"""
    pass
