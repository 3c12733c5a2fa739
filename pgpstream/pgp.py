""" pgp.py

this is where the armorable PGP block objects live
"""
import collections
import collections.abc
import contextlib
import copy
import itertools
import warnings
import weakref

from datetime import datetime
from datetime import timezone

from cryptography.hazmat.primitives import hashes

from .constants import Features
from .constants import HashAlgorithm
from .constants import KeyFlags
from .constants import PacketType
from .constants import PubKeyAlgorithm
from .constants import SignatureType
from .constants import SymmetricKeyAlgorithm

from .decorators import KeyAction

from .errors import PGPDecryptionError
from .errors import PGPError
from .errors import WrongPassphrase

from .packet import Key
from .packet import OnePassSignatureV3
from .packet import Opaque
from .packet import Packet
from .packet import Primary
from .packet import PrivKeyV4
from .packet import Private
from .packet import PrivSubKeyV4
from .packet import Public
from .packet import Signature
from .packet import SignatureV4
from .packet import Sub
from .packet import UserID

from .passphrase import Passphrase

from .types import Armorable
from .types import Fingerprint
from .types import PGPObject
from .types import SignatureVerification

__all__ = ['PGPSignature',
           'PGPUID',
           'PGPKey',
           'PGPKeyring']

_encryption_usage = frozenset({KeyFlags.EncryptCommunications, KeyFlags.EncryptStorage})

_cert_sigtypes = frozenset({SignatureType.Generic_Cert, SignatureType.Persona_Cert,
                            SignatureType.Casual_Cert, SignatureType.Positive_Cert})


def _secret_bytes(passphrase):
    if isinstance(passphrase, Passphrase):
        return bytes(passphrase)

    if isinstance(passphrase, str):
        return passphrase.encode('utf-8')

    if isinstance(passphrase, (bytes, bytearray)):
        return bytes(passphrase)

    raise TypeError("Unexpected passphrase type: {:s}".format(type(passphrase).__name__))


class PGPSignature(Armorable, PGPObject):
    @property
    def created(self):
        """
        A :py:obj:`~datetime.datetime` of when this signature was created.
        """
        return self._signature.subpackets['h_CreationTime'][-1].created

    @property
    def embedded_signature(self):
        """
        The primary key binding signature carried by a subkey binding signature, if there is one.
        """
        esps = self._signature.subpackets['EmbeddedSignature']
        if not esps:
            return None

        return PGPSignature() | esps[-1]._sig

    @property
    def features(self):
        """
        A ``set`` of implementation features specified in this signature, if any. Otherwise, an empty ``set``.
        """
        sps = self._signature.subpackets['h_Features']
        return set(sps[-1].flags) if sps else set()

    @property
    def hash2(self):
        return self._signature.hash2

    @property
    def hashprefs(self):
        """
        A ``list`` of preferred hash algorithms specified in this signature, if any. Otherwise, an empty ``list``.
        """
        sps = self._signature.subpackets['h_PreferredHashAlgorithms']
        return list(sps[-1].flags) if sps else []

    @property
    def cipherprefs(self):
        """
        A ``list`` of preferred symmetric algorithms specified in this signature, if any. Otherwise, an empty ``list``.
        """
        sps = self._signature.subpackets['h_PreferredSymmetricAlgorithms']
        return list(sps[-1].flags) if sps else []

    @property
    def compprefs(self):
        """
        A ``list`` of preferred compression algorithms specified in this signature, if any. Otherwise, an empty ``list``.
        """
        sps = self._signature.subpackets['h_PreferredCompressionAlgorithms']
        return list(sps[-1].flags) if sps else []

    @property
    def hash_algorithm(self):
        """
        The :py:obj:`~constants.HashAlgorithm` used when computing this signature.
        """
        return self._signature.halg

    @property
    def key_algorithm(self):
        """
        The :py:obj:`~constants.PubKeyAlgorithm` of the key that generated this signature.
        """
        return self._signature.pubalg

    @property
    def key_flags(self):
        """
        A ``set`` of :py:obj:`~constants.KeyFlags` specified in this signature, if any. Otherwise, an empty ``set``.
        """
        sps = self._signature.subpackets['h_KeyFlags']
        return set(sps[-1].flags) if sps else set()

    @property
    def is_primary_uid(self):
        sps = self._signature.subpackets['h_PrimaryUserID']
        return bool(sps[-1]) if sps else False

    @property
    def magic(self):
        return "SIGNATURE"

    @property
    def signer(self):
        """
        The 16-character Key ID of the key that generated this signature.
        """
        return self._signature.signer

    @property
    def signer_fingerprint(self):
        """
        The fingerprint of the key that generated this signature, if it contained an Issuer Fingerprint subpacket.
        """
        return self._signature.signer_fingerprint

    @property
    def signers_uid(self):
        """
        The User ID the signer declared this signature was made as, or ``None``.
        """
        sps = self._signature.subpackets['h_SignersUserID']
        return sps[-1].userid if sps else None

    @property
    def type(self):
        """
        The :py:obj:`~constants.SignatureType` of this signature.
        """
        return self._signature.sigtype

    @property
    def __sig__(self):
        return self._signature.signature.__sig__()

    @classmethod
    def new(cls, sigtype, pkalg, halg, signer, created=None):
        """
        Start a new V4 signature. ``signer`` is the :py:obj:`~pgpstream.types.Fingerprint` of the signing key;
        it is recorded both as a hashed Issuer Fingerprint and an unhashed Issuer Key ID.
        """
        sig = PGPSignature()

        if created is None:
            created = datetime.now(timezone.utc)

        sigpkt = SignatureV4()
        sigpkt.subpackets.addnew('CreationTime', hashed=True, created=created)
        sigpkt.subpackets.addnew('IssuerFingerprint', hashed=True, issuer_fingerprint=Fingerprint(signer))
        sigpkt.subpackets.addnew('Issuer', issuer=Fingerprint(signer).keyid)

        sigpkt.sigtype = sigtype
        sigpkt.pubalg = pkalg

        if halg is not None:
            sigpkt.halg = halg

        sig._signature = sigpkt
        return sig

    def __init__(self):
        """
        PGPSignature objects represent OpenPGP compliant signatures.

        PGPSignature implements the ``__str__`` method, the output of which will be the signature object in
        OpenPGP-compliant ASCII-armored format.

        PGPSignature implements the ``__bytes__`` method, the output of which will be the signature object in
        OpenPGP-compliant binary format.
        """
        super().__init__()
        self._signature = None

    def __bytearray__(self):
        return self._signature.__bytearray__()

    def __repr__(self):
        return "<PGPSignature [{:s}] object at 0x{:02x}>".format(self.type.name, id(self))

    def __or__(self, other):
        if isinstance(other, Signature) and self._signature is None:
            self._signature = other
            return self

        raise TypeError("unsupported operand type(s) for |: '{:s}' and '{:s}'"
                        "".format(self.__class__.__name__, other.__class__.__name__))

    def hashtrailer(self):
        """
        The V4 signature trailer: the signature fields up to and including the hashed subpackets, the
        octets 0x04 0xFF, and a four-octet count of the bytes hashed so far.
        """
        hcontext = self._signature.canonical_bytes()

        _data = bytearray()
        _data += hcontext
        _data += b'\x04\xff'
        _data += self.int_to_bytes(len(hcontext), 4)
        return _data

    def hashdata(self, subject):
        _data = bytearray()

        if isinstance(subject, str):
            subject = subject.encode('utf-8')

        if self.type == SignatureType.BinaryDocument:
            # For binary document signatures (type 0x00), the document data is hashed directly.
            if subject is not None:
                _data += bytearray(subject)

        if self.type in _cert_sigtypes | {SignatureType.Subkey_Binding, SignatureType.PrimaryKey_Binding}:
            # When a signature is made over a key, the hash data starts with the octet 0x99, followed by a
            # two-octet length of the key, and then body of the key packet.
            _s = b''
            if isinstance(subject, PGPUID):
                _s = subject._parent.hashdata

            elif isinstance(subject, PGPKey) and not subject.is_primary:
                _s = subject._parent.hashdata

            elif isinstance(subject, PGPKey) and subject.is_primary:
                _s = subject.hashdata

            if len(_s) > 0:
                _data += b'\x99' + self.int_to_bytes(len(_s), 2) + _s

        if self.type in {SignatureType.Subkey_Binding, SignatureType.PrimaryKey_Binding}:
            # A subkey binding signature (type 0x18) or primary key binding signature (type 0x19) then hashes
            # the subkey using the same format as the main key.
            if subject.is_primary:
                _s = subject.subkeys[self.signer].hashdata

            else:
                _s = subject.hashdata

            _data += b'\x99' + self.int_to_bytes(len(_s), 2) + _s

        if self.type in _cert_sigtypes:
            # A V4 certification hashes the constant 0xB4 for User ID certifications, followed by a four-octet
            # number giving the length of the User ID data, and then the User ID data.
            _s = subject.hashdata
            _data += b'\xb4' + self.int_to_bytes(len(_s), 4) + _s

        _data += self.hashtrailer()
        return _data

    def make_onepass(self):
        onepass = OnePassSignatureV3()
        onepass.sigtype = self.type
        onepass.halg = self.hash_algorithm
        onepass.pubalg = self.key_algorithm
        onepass.signer = self.signer
        # the last (here: only) one-pass signature before the signed data
        onepass.nested = True
        onepass.update_hlen()
        return onepass

    def parse(self, packet):
        unarmored = self.ascii_unarmor(packet)
        data = unarmored['body']

        if unarmored['magic'] is not None and unarmored['magic'] != 'SIGNATURE':
            raise ValueError('Expected: SIGNATURE. Got: {}'.format(str(unarmored['magic'])))

        if unarmored['headers'] is not None:
            self.ascii_headers = unarmored['headers']

        pkt = Packet(data)
        if not isinstance(pkt, Signature) or isinstance(pkt, Opaque):
            raise ValueError('Expected: Signature. Got: {:s}'.format(pkt.__class__.__name__))

        self._signature = pkt


class PGPUID(object):
    @property
    def name(self):
        """The name portion of this User ID"""
        return self._uid.name

    @property
    def comment(self):
        """The comment portion of this User ID, if present"""
        return self._uid.comment

    @property
    def email(self):
        """The email portion of this User ID, if present"""
        return self._uid.email

    @property
    def userid(self):
        """The whole User ID string"""
        return self._uid.uid

    @property
    def hashdata(self):
        return self._uid.text_to_bytes(self._uid.uid)

    @property
    def signatures(self):
        return list(self._signatures)

    @property
    def selfsig(self):
        """
        The most recent self-certification of this User ID, or ``None``.
        """
        if self._parent is None:
            return None

        selfsigs = [sig for sig in self._signatures
                    if sig.signer == self._parent.fingerprint.keyid and sig.type in _cert_sigtypes]
        return max(selfsigs, key=lambda sig: sig.created) if selfsigs else None

    @classmethod
    def new(cls, uid):
        """
        Create a new User ID.

        :param uid: The full User ID text, conventionally ``Name (Comment) <email>``.
        :type uid: ``str``
        """
        pgpuid = PGPUID()
        pgpuid._uid = UserID()
        pgpuid._uid.uid = uid
        pgpuid._uid.update_hlen()
        return pgpuid

    def __init__(self):
        super().__init__()
        self._uid = None
        self._signatures = collections.deque()
        self._parent = None

    def __str__(self):
        return self.userid

    def __repr__(self):
        return "<PGPUID [{:s}] at 0x{:02X}>".format(self.userid, id(self))

    def __bytearray__(self):
        _bytes = bytearray()
        _bytes += self._uid.__bytearray__()
        for sig in self._signatures:
            _bytes += sig.__bytearray__()
        return _bytes

    def __bytes__(self):
        return bytes(self.__bytearray__())

    def __copy__(self):
        uid = PGPUID()
        uid._uid = self._uid
        uid._signatures = collections.deque(self._signatures)
        return uid

    def __or__(self, other):
        if isinstance(other, PGPSignature):
            self._signatures.append(other)
            return self

        if isinstance(other, UserID) and self._uid is None:
            self._uid = other
            return self

        raise TypeError("unsupported operand type(s) for |: '{:s}' and '{:s}'"
                        "".format(self.__class__.__name__, other.__class__.__name__))


class PGPKey(Armorable, PGPObject):
    """
    11.1.  Transferable Public Keys

    OpenPGP users may transfer public keys. The essential elements of a transferable public key are as follows:

     - One Public-Key packet
     - Zero or more revocation signatures
     - One or more User ID packets
     - After each User ID packet, zero or more Signature packets (certifications)
     - Zero or more Subkey packets
     - After each Subkey packet, one Signature packet, plus optionally a revocation

    11.2.  Transferable Secret Keys

    The format of a transferable secret key is the same as a transferable public key except that
    secret-key and secret-subkey packets are used instead of the public key and public-subkey packets.
    """
    @property
    def created(self):
        """A :py:obj:`~datetime.datetime` object of the creation date and time of the key, in UTC."""
        return self._key.created

    @property
    def fingerprint(self):
        """The fingerprint of this key, as a :py:obj:`~pgpstream.types.Fingerprint` object."""
        if self._key:
            return self._key.fingerprint

    @property
    def hashdata(self):
        # the key packet body as it is hashed into signatures over this key
        return self._key.pubdata()

    @property
    def is_primary(self):
        """``True`` if this is a primary key; ``False`` if this is a subkey"""
        return isinstance(self._key, Primary) and not isinstance(self._key, Sub)

    @property
    def is_protected(self):
        """``True`` if this is a private key that is protected with a passphrase, otherwise ``False``"""
        if self.is_public:
            return False

        return self._key.protected

    @property
    def is_public(self):
        """``True`` if this is a public key, otherwise ``False``"""
        return isinstance(self._key, Public) and not isinstance(self._key, Private)

    @property
    def is_unlocked(self):
        """``False`` if this is a private key that is protected with a passphrase and has not yet been unlocked, otherwise ``True``"""
        if self.is_public:
            return True

        if not self.is_protected:
            return True

        return self._key.unlocked

    @property
    def key_algorithm(self):
        """The :py:obj:`constants.PubKeyAlgorithm` pertaining to this key"""
        return self._key.pkalg

    @property
    def key_size(self):
        """
        The size pertaining to this key. ``int`` for non-EC key algorithms; :py:obj:`constants.EllipticCurveOID` for EC keys.
        """
        if self.key_algorithm in {PubKeyAlgorithm.ECDSA, PubKeyAlgorithm.ECDH, PubKeyAlgorithm.EdDSA}:
            return self._key.keymaterial.oid

        return self._key.keymaterial.n.bit_length()

    @property
    def magic(self):
        return '{:s} KEY BLOCK'.format('PUBLIC' if self.is_public else 'PRIVATE')

    @property
    def parent(self):
        """The primary key this subkey is bound to, or ``None``"""
        return self._parent

    @property
    def pubkey(self):
        """If the :py:obj:`PGPKey` object is a private key, this method returns a corresponding public key object with
        all the trimmings. If it is already a public key, just return it.
        """
        if self.is_public:
            return self

        pub = self._sibling() if self._sibling is not None else None
        if pub is None:
            pub = PGPKey()
            pub.ascii_headers = self.ascii_headers.copy()
            pub |= self._key.pubkey()

            for sig in self._signatures:
                pub |= sig

            for uid in self._uids:
                pub |= copy.copy(uid)

            for subkey in self.subkeys.values():
                pub |= subkey.pubkey

            self._sibling = weakref.ref(pub)

        return pub

    @property
    def self_signatures(self):
        """Binding signatures over this key made by its primary key (for subkeys) or by itself (for primary keys)."""
        signer = self.fingerprint.keyid if self.is_primary else self._parent.fingerprint.keyid
        sigtype = SignatureType.DirectlyOnKey if self.is_primary else SignatureType.Subkey_Binding
        for sig in self._signatures:
            if sig.signer == signer and sig.type == sigtype:
                yield sig

    @property
    def signatures(self):
        """A list of signatures directly on this key"""
        return list(self._signatures)

    @property
    def subkeys(self):
        """An :py:obj:`~collections.OrderedDict` of subkeys bound to this primary key, if applicable,
        selected by 16-character keyid."""
        return self._children

    @property
    def usage_flags(self):
        """
        The ``set`` of :py:obj:`~constants.KeyFlags` this key may be used for. For a primary key this is taken
        from the self-certification of its primary User ID, and always includes Certify. For a subkey it is
        taken from the most recent binding signature.
        """
        return self._get_key_flags()

    @property
    def userids(self):
        """A ``list`` of :py:obj:`PGPUID` objects containing User ID information about this key"""
        return list(self._uids)

    @classmethod
    def new(cls, key_algorithm, key_size, created=None):
        """
        Generate a new PGP key

        :param key_algorithm: Key algorithm to use.
        :type key_algorithm: :py:obj:`~constants.PubKeyAlgorithm`
        :param key_size: Key size in bits, unless `key_algorithm` is :py:obj:`~constants.PubKeyAlgorithm.ECDSA`,
               :py:obj:`~constants.PubKeyAlgorithm.ECDH` or :py:obj:`~constants.PubKeyAlgorithm.EdDSA`, in which
               case it should be the Curve OID to use.
        :type key_size: ``int`` or :py:obj:`~constants.EllipticCurveOID`
        :param created: When was the key created? (``None`` or unset means now)
        :type created: :py:obj:`~datetime.datetime` or ``None``
        :return: A newly generated :py:obj:`PGPKey`
        """
        # new private key shell first
        key = PGPKey()

        if key_algorithm in {PubKeyAlgorithm.RSAEncrypt, PubKeyAlgorithm.RSASign}:  # pragma: no cover
            warnings.warn('{:s} is deprecated - generating key using RSAEncryptOrSign'.format(key_algorithm.name))
            key_algorithm = PubKeyAlgorithm.RSAEncryptOrSign

        # generate some key data to match key_algorithm and key_size
        key._key = PrivKeyV4.new(key_algorithm, key_size, created=created)

        return key

    def __init__(self):
        """
        PGPKey objects represent OpenPGP compliant keys along with all of their associated data.

        PGPKey implements the `__str__` method, the output of which will be the key composition in
        OpenPGP-compliant ASCII-armored format.

        PGPKey implements the `__bytes__` method, the output of which will be the key composition in
        OpenPGP-compliant binary format.

        Any signatures within the PGPKey that are marked as being non-exportable will not be included in the output
        of either of those methods.
        """
        super().__init__()
        self._key = None
        self._children = collections.OrderedDict()
        self._signatures = collections.deque()
        self._uids = collections.deque()
        self._sibling = None
        self._parent = None

    def __bytearray__(self):
        _bytes = bytearray()
        # us
        _bytes += self._key.__bytearray__()
        # our signatures
        for sig in self._signatures:
            _bytes += sig.__bytearray__()
        # one or more User IDs, followed by their signatures
        for uid in self._uids:
            _bytes += uid.__bytearray__()
        # subkeys
        for sk in self._children.values():
            _bytes += sk.__bytearray__()

        return _bytes

    def __repr__(self):
        if self._key is not None:
            return "<PGPKey [{:s}][0x{:s}] at 0x{:02X}>" \
                   "".format(self._key.__class__.__name__, self.fingerprint.keyid, id(self))

        return "<PGPKey [unknown] at 0x{:02X}>".format(id(self))

    def __or__(self, other):
        if isinstance(other, Key) and self._key is None:
            self._key = other

        elif isinstance(other, PGPKey) and not other.is_primary:
            other._parent = self
            self._children[other.fingerprint.keyid] = other

        elif isinstance(other, PGPSignature):
            self._signatures.append(other)

        elif isinstance(other, PGPUID):
            other._parent = self
            self._uids.append(other)

        else:
            raise TypeError("unsupported operand type(s) for |: '{:s}' and '{:s}'"
                            "".format(self.__class__.__name__, other.__class__.__name__))

        # the public half is rebuilt on next access
        self._sibling = None
        if self._parent is not None:
            self._parent._sibling = None

        return self

    def ring_order(self):
        """
        This key, followed by each of its subkeys in the order they were added.
        """
        yield self
        if self.is_primary:
            yield from self._children.values()

    def encryption_key(self):
        """
        The first key in :py:meth:`ring_order` that is flagged for encryption and whose algorithm can encrypt,
        or ``None``.
        """
        return next((k for k in self.ring_order()
                     if k.usage_flags & _encryption_usage and k.key_algorithm.can_encrypt), None)

    def signing_key(self):
        """
        The first key in :py:meth:`ring_order` that is flagged for signing and whose algorithm can sign, or ``None``.
        """
        return next((k for k in self.ring_order()
                     if KeyFlags.Sign in k.usage_flags and k.key_algorithm.can_sign), None)

    def protect(self, passphrase, enc_alg=SymmetricKeyAlgorithm.AES256, hash_alg=HashAlgorithm.SHA256):
        """
        Add a passphrase to a private key. If the key is already passphrase protected, it should be unlocked before
        a new passphrase can be specified.

        Has no effect on public keys.

        :param passphrase: A passphrase to protect the key with
        :type passphrase: :py:obj:`~pgpstream.passphrase.Passphrase`, ``str``, ``bytes``
        :param enc_alg: Symmetric encryption algorithm to use to protect the key
        :type enc_alg: :py:obj:`~constants.SymmetricKeyAlgorithm`
        :param hash_alg: Hash algorithm to use in the String-to-Key specifier
        :type hash_alg: :py:obj:`~constants.HashAlgorithm`
        """
        if self.is_public:
            # we can't protect public keys because only private key material is ever protected
            warnings.warn("Public keys cannot be passphrase-protected", stacklevel=2)
            return

        if self.is_protected and not self.is_unlocked:
            # we can't protect a key that is already protected unless it is unlocked first
            warnings.warn("This key is already protected with a passphrase - "
                          "please unlock it before attempting to specify a new passphrase", stacklevel=2)
            return

        secret = _secret_bytes(passphrase)
        try:
            for sk in self.ring_order():
                sk._key.protect(secret, enc_alg, hash_alg)

        finally:
            del secret

    @contextlib.contextmanager
    def unlock(self, passphrase):
        """
        Context manager method for unlocking passphrase-protected private keys. Has no effect if the key is not both
        private and passphrase-protected.

        When the context managed block is exited, the unprotected private key material is removed.

        Example::

            privkey = PGPKey()
            privkey.parse(keytext)

            assert privkey.is_protected
            assert privkey.is_unlocked is False

            with privkey.unlock("TheCorrectPassphrase"):
                # privkey is now unlocked
                assert privkey.is_unlocked
                sig = privkey.sign("some text")

            # privkey is no longer unlocked
            assert privkey.is_unlocked is False

        Emits a :py:obj:`~warnings.UserWarning` if the key is public or not passphrase protected.

        :param passphrase: The passphrase to be used to unlock this key.
        :type passphrase: :py:obj:`~pgpstream.passphrase.Passphrase`, ``str``, ``bytes``
        :raises: :py:exc:`~pgpstream.errors.WrongPassphrase` if the passphrase is incorrect
        """
        if self.is_public:
            # we can't unprotect public keys because only private key material is ever protected
            warnings.warn("Public keys cannot be passphrase-protected", stacklevel=3)
            yield self
            return

        if not self.is_protected:
            # we can't unprotect private keys that are not protected, because there is no ciphertext to decrypt
            warnings.warn("This key is not protected with a passphrase", stacklevel=3)
            yield self
            return

        secret = _secret_bytes(passphrase)
        try:
            try:
                for sk in self.ring_order():
                    sk._key.unprotect(secret)

            except PGPDecryptionError as ex:
                raise WrongPassphrase(str(ex)) from ex

            finally:
                del secret

            yield self

        finally:
            # clean up here by deleting the previously decrypted secret key material
            for sk in self.ring_order():
                sk._key.clear()

    def add_uid(self, uid, selfsign=True, **prefs):
        """
        Add a User ID to this key.

        :param uid: The user id to add
        :type uid: :py:obj:`~pgpstream.pgp.PGPUID`
        :param selfsign: Whether or not to self-sign the user id before adding it
        :type selfsign: ``bool``

        Valid optional keyword arguments are identical to those of self-signatures for :py:meth:`PGPKey.certify`.
        Any such keyword arguments are ignored if selfsign is ``False``
        """
        uid._parent = self
        if selfsign:
            uid |= self.certify(uid, SignatureType.Positive_Cert, **prefs)

        self |= uid

    def get_uid(self, search):
        """
        Find and return a User ID that matches the search string given.

        :param search: A text string to match the whole User ID, name, comment, or email address against
        :type search: ``str``
        :return: The first matching :py:obj:`~pgpstream.pgp.PGPUID`, or ``None`` if no matches were found.
        """
        if self.is_primary:
            return next((u for u in self._uids if search in (u.userid, u.name, u.comment, u.email)), None)
        return self.parent.get_uid(search)

    def add_subkey(self, key, **prefs):
        """
        Add a key as a subkey to this key.

        :param key: A private :py:obj:`~pgpstream.pgp.PGPKey` that does not have any subkeys of its own
        :keyword usage: A ``set`` of key usage flags, as :py:obj:`~constants.KeyFlags` for the subkey to be added.
        :type usage: ``set``

        Other valid optional keyword arguments are identical to those of self-signatures for :py:meth:`PGPKey.certify`
        """
        if self.is_public:
            raise PGPError("Cannot add a subkey to a public key. Add the subkey to the private component first!")

        if key.is_public:
            raise PGPError("Cannot add a public key as a subkey to this key")

        if key.is_primary:
            if len(key._children) > 0:
                raise PGPError("Cannot add a key that already has subkeys as a subkey!")

            # convert key into a subkey
            npk = PrivSubKeyV4()
            npk.pkalg = key._key.pkalg
            npk.created = key._key.created
            npk.keymaterial = key._key.keymaterial
            key._key = npk
            key._key.update_hlen()

        self |= key

        bsig = self.bind(key, **prefs)
        key |= bsig

    def _get_key_flags(self):
        if self.is_primary:
            uid = next((u for u in self._uids if u.selfsig is not None and u.selfsig.is_primary_uid), None)
            if uid is None:
                uid = next((u for u in self._uids if u.selfsig is not None), None)

            # RFC 4880 says that primary keys *must* be capable of certification
            return {KeyFlags.Certify} | (uid.selfsig.key_flags if uid is not None else set())

        if self._parent is None:
            return set()

        bsig = max(self.self_signatures, key=lambda sig: sig.created, default=None)
        return bsig.key_flags if bsig is not None else set()

    def _sign(self, subject, sig, **prefs):
        """
        The actual signing magic happens here.

        :param subject: The subject to sign, or a running :py:obj:`~cryptography.hazmat.primitives.hashes.Hash`
                        over the data to be signed
        :param sig: The :py:obj:`PGPSignature` object the new signature is to be encapsulated within
        :returns: ``sig``, after the signature is added to it.
        """
        user = prefs.pop('user', None)
        uid = None
        if user is not None:
            uid = self.get_uid(user)

            if uid is None:
                raise PGPError("No User ID matching '{:s}'".format(user))

        if sig.hash_algorithm is None:
            selfuid = next(iter((self if self.is_primary else self.parent).userids), None)
            hashprefs = selfuid.selfsig.hashprefs if selfuid is not None and selfuid.selfsig is not None else []
            sig._signature.halg = next((h for h in hashprefs if h.is_supported), HashAlgorithm.SHA256)

        if uid is not None:
            sig._signature.subpackets.addnew('SignersUserID', hashed=True, userid=str(uid))

        if isinstance(subject, hashes.Hash):
            if subject.algorithm.name != sig.hash_algorithm.algorithm.name:
                raise PGPError("Expected a {:s} hash context, got {:s}"
                               "".format(sig.hash_algorithm.name, subject.algorithm.name))

            subject.update(bytes(sig.hashtrailer()))
            digest = subject.finalize()
            _sig = self._key.sign(digest, sig.hash_algorithm, prehashed=True)

        else:
            sigdata = sig.hashdata(subject)
            digest = sig.hash_algorithm.digest(bytes(sigdata))
            _sig = self._key.sign(bytes(sigdata), sig.hash_algorithm)

        sig._signature.hash2 = bytearray(digest[:2])
        sig._signature.signature.from_signer(_sig)
        sig._signature.update_hlen()

        return sig

    @KeyAction(KeyFlags.Sign, is_unlocked=True, is_public=False)
    def sign(self, subject, **prefs):
        """
        Sign binary data using this key.

        :param subject: The data to be signed, or a running hash context over it
        :type subject: ``str``, ``bytes``, ``None``, :py:obj:`~cryptography.hazmat.primitives.hashes.Hash`
        :raises: :py:exc:`~pgpstream.errors.PGPError` if the key is passphrase-protected and has not been unlocked
        :raises: :py:exc:`~pgpstream.errors.PGPError` if the key is public
        :returns: :py:obj:`PGPSignature`

        The following optional keyword arguments can be used with :py:meth:`PGPKey.sign`, as well as
        :py:meth:`PGPKey.certify` and :py:meth:`PGPKey.bind`:

        :keyword hash: The hash algorithm to use
        :type hash: :py:obj:`~constants.HashAlgorithm`
        :keyword user: Specify which User ID to use when creating this signature. Also adds a "Signer's User ID"
                       to the signature.
        :type user: ``str``
        :keyword created: Specify the time that the signature should be made.  If unset or None,
                          it will use the present time.
        :type created: :py:obj:`~datetime.datetime`
        """
        hash_algo = prefs.pop('hash', None)
        sig = PGPSignature.new(SignatureType.BinaryDocument, self.key_algorithm, hash_algo, self.fingerprint,
                               created=prefs.pop('created', None))

        return self._sign(subject, sig, **prefs)

    def _add_preferences(self, sig, prefs):
        # self-signature preferences shared by certifications and subkey bindings
        usage = prefs.pop('usage', None)
        cipher_prefs = prefs.pop('ciphers', None)
        hash_prefs = prefs.pop('hashes', None)
        compression_prefs = prefs.pop('compression', None)
        features = prefs.pop('features', None)
        keyserver_flags = prefs.pop('keyserver_flags', None)

        if usage is not None:
            sig._signature.subpackets.addnew('KeyFlags', hashed=True, flags=set(usage))

        if cipher_prefs:
            sig._signature.subpackets.addnew('PreferredSymmetricAlgorithms', hashed=True, flags=list(cipher_prefs))

        if hash_prefs:
            sig._signature.subpackets.addnew('PreferredHashAlgorithms', hashed=True, flags=list(hash_prefs))
            if sig.hash_algorithm is None:
                sig._signature.halg = hash_prefs[0]

        if compression_prefs:
            sig._signature.subpackets.addnew('PreferredCompressionAlgorithms', hashed=True,
                                             flags=list(compression_prefs))

        if keyserver_flags is not None:
            sig._signature.subpackets.addnew('KeyServerPreferences', hashed=True, flags=set(keyserver_flags))

        if features:
            sig._signature.subpackets.addnew('Features', hashed=True, flags=set(features))

        return usage

    @KeyAction(KeyFlags.Certify, is_unlocked=True, is_public=False)
    def certify(self, subject, level=SignatureType.Generic_Cert, **prefs):
        """
        certify(subject, level=SignatureType.Generic_Cert, **prefs)

        Sign a User ID of this key.

        :param subject: The user id to be certified.
        :type subject: :py:obj:`PGPUID`
        :param level: :py:obj:`~constants.SignatureType.Generic_Cert`, :py:obj:`~constants.SignatureType.Persona_Cert`,
                      :py:obj:`~constants.SignatureType.Casual_Cert`, or :py:obj:`~constants.SignatureType.Positive_Cert`.
        :raises: :py:exc:`~pgpstream.errors.PGPError` if the key is passphrase-protected and has not been unlocked
        :raises: :py:exc:`~pgpstream.errors.PGPError` if the key is public
        :returns: :py:obj:`PGPSignature`

        These optional keywords only have an effect when self-signing a User ID:

        :keyword usage: A ``set`` of key usage flags, as :py:obj:`~constants.KeyFlags`.
        :keyword ciphers: A list of preferred symmetric ciphers, as :py:obj:`~constants.SymmetricKeyAlgorithm`.
        :keyword hashes: A list of preferred hash algorithms, as :py:obj:`~constants.HashAlgorithm`.
        :keyword compression: A list of preferred compression algorithms, as :py:obj:`~constants.CompressionAlgorithm`.
        :keyword features: A ``set`` of :py:obj:`~constants.Features`. Defaults to modification detection.
        :keyword keyserver_flags: A set of Key Server Preferences, as :py:obj:`~constants.KeyServerPreferences`.
        :keyword primary: Whether or not to consider the certified User ID as the primary one.
        """
        if not isinstance(subject, PGPUID):
            raise TypeError("Expected: PGPUID. Got: {:s}".format(subject.__class__.__name__))

        hash_algo = prefs.pop('hash', None)
        sig = PGPSignature.new(level, self.key_algorithm, hash_algo, self.fingerprint, created=prefs.pop('created', None))

        if subject._parent is None or subject._parent.fingerprint == self.fingerprint:
            # signature options that only make sense in self-certifications
            prefs.setdefault('features', {Features.ModificationDetection})
            primary_uid = prefs.pop('primary', None)

            self._add_preferences(sig, prefs)

            if primary_uid is not None:
                sig._signature.subpackets.addnew('PrimaryUserID', hashed=True, primary=primary_uid)

        return self._sign(subject, sig, **prefs)

    @KeyAction(is_unlocked=True, is_public=False)
    def bind(self, key, **prefs):
        """
        Bind a subkey to this key.

        In addition to the optional keyword arguments accepted for self-signatures by :py:meth:`PGPKey.certify`,
        the following optional keyword arguments can be used with :py:meth:`PGPKey.bind`.

        :keyword crosssign: If ``False``, do not attempt a cross-signature (defaults to ``True``). Subkeys
                            which are not capable of signing will not produce a cross-signature in any case.
        :type crosssign: ``bool``
        """
        hash_algo = prefs.pop('hash', None)

        if self.is_primary and not key.is_primary:
            sig_type = SignatureType.Subkey_Binding

        elif key.is_primary and not self.is_primary:
            sig_type = SignatureType.PrimaryKey_Binding

        else:  # pragma: no cover
            raise PGPError("Cannot bind {!r} to {!r}".format(key, self))

        sig = PGPSignature.new(sig_type, self.key_algorithm, hash_algo, self.fingerprint, created=prefs.pop('created', None))

        if sig_type == SignatureType.Subkey_Binding:
            # signature options that only make sense in subkey binding signatures
            usage = self._add_preferences(sig, prefs)

            crosssig = None
            # if possible, have the subkey create a primary key binding signature
            if key.key_algorithm.can_sign and prefs.pop('crosssign', True):
                crosssig = key.bind(self, hash=sig.hash_algorithm)

            if crosssig is None:
                if usage is None:
                    raise PGPError('subkey with no key usage flags (may be used for any purpose, including signing) '
                                   'requires a cross-signature')
                if KeyFlags.Sign in usage:
                    raise PGPError('subkey marked for signing usage requires a cross-signature')

            else:
                sig._signature.subpackets.addnew('EmbeddedSignature', hashed=False, _sig=crosssig._signature)

        return self._sign(key, sig, **prefs)

    def _verify_crosssig(self, sig, subkey):
        # a signing subkey's binding must embed a primary key binding signature made by that subkey
        crosssig = sig.embedded_signature
        if crosssig is None or crosssig.type != SignatureType.PrimaryKey_Binding \
                or crosssig.signer != subkey.fingerprint.keyid:
            return False

        return subkey._key.keymaterial.verify(bytes(crosssig.hashdata(self)), crosssig.__sig__,
                                              crosssig.hash_algorithm.algorithm)

    def verify(self, subject, signature=None):
        """
        Verify a subject with a signature using this key.

        :param subject: The subject to verify
        :type subject: ``str``, ``bytes``, ``None``, :py:obj:`PGPKey`, :py:obj:`PGPUID`
        :param signature: If the signature is detached, it should be specified here.
        :type signature: :py:obj:`PGPSignature`
        :returns: :py:obj:`~pgpstream.types.SignatureVerification`
        """
        sspairs = []

        # some type checking
        if not isinstance(subject, (type(None), PGPKey, PGPUID, str, bytes, bytearray)):
            raise TypeError("Unexpected subject value: {:s}".format(str(type(subject))))
        if not isinstance(signature, (type(None), PGPSignature)):
            raise TypeError("Unexpected signature value: {:s}".format(str(type(signature))))

        def _filter_sigs(sigs):
            _ids = {self.fingerprint.keyid} | set(self.subkeys)
            for sig in sigs:
                if sig.signer in _ids:
                    yield sig

        # collect signature(s)
        if signature is None:
            if isinstance(subject, PGPUID):
                sspairs += [(sig, subject) for sig in _filter_sigs(subject._signatures)]

            if isinstance(subject, PGPKey):
                sspairs += [(sig, subject) for sig in _filter_sigs(subject._signatures)]

                # user ids
                for uid in subject.userids:
                    sspairs += [(sig, uid) for sig in _filter_sigs(uid._signatures)]

                # subkey binding signatures
                for subkey in subject.subkeys.values():
                    sspairs += [(sig, subkey) for sig in _filter_sigs(subkey._signatures)]

        elif signature.signer in {self.fingerprint.keyid} | set(self.subkeys):
            sspairs += [(signature, subject)]

        if len(sspairs) == 0:
            raise PGPError("No signatures to verify")

        # finally, start verifying signatures
        sigv = SignatureVerification()
        for sig, subj in sspairs:
            if self.fingerprint.keyid != sig.signer and sig.signer in self.subkeys:
                sigv &= self.subkeys[sig.signer].verify(subj, sig)

            else:
                verified = self._key.keymaterial.verify(bytes(sig.hashdata(subj)), sig.__sig__,
                                                        sig.hash_algorithm.algorithm)

                if verified and sig.type == SignatureType.Subkey_Binding and KeyFlags.Sign in sig.key_flags:
                    verified = self._verify_crosssig(sig, subj)

                sigv.add_sigsubj(sig, self, subj, verified)

        return sigv

    def parse(self, data):
        unarmored = self.ascii_unarmor(data)
        data = unarmored['body']

        if unarmored['magic'] is not None and 'KEY' not in unarmored['magic']:
            raise ValueError('Expected: KEY. Got: {}'.format(str(unarmored['magic'])))

        if unarmored['headers'] is not None:
            self.ascii_headers = unarmored['headers']

        # keys will hold other keys parsed here
        keys = collections.OrderedDict()
        primary = None
        # last holds the last non-signature thing processed
        last = None

        while len(data) > 0:
            pkt = Packet(data)

            if isinstance(pkt, Opaque):
                if pkt.header.typeid != PacketType.Trust:
                    warnings.warn("Skipping unsupported packet: {!r}".format(pkt), stacklevel=2)
                continue

            if isinstance(pkt, Key) and not isinstance(pkt, Sub):
                primary = (self if self._key is None else PGPKey()) | pkt
                keys[(primary.fingerprint.keyid, primary.is_public)] = primary
                last = primary

            elif primary is None:
                raise PGPError("Expected a primary key packet. Got: {!r}".format(pkt))

            elif isinstance(pkt, Key):
                last = PGPKey() | pkt
                primary |= last

            elif isinstance(pkt, UserID):
                last = PGPUID() | pkt
                primary |= last

            elif isinstance(pkt, Signature):
                last |= PGPSignature() | pkt

            else:
                raise PGPError("Unexpected packet in a transferable key: {!r}".format(pkt))

        if self._key is None:
            raise PGPError("No key found")

        # remove self from keys
        keys.pop((self.fingerprint.keyid, self.is_public), None)
        return keys


class PGPKeyring(collections.abc.Container, collections.abc.Iterable, collections.abc.Sized):
    def __init__(self, *args):
        """
        PGPKeyring objects are ordered in-memory collections of primary keys, public or private. Iteration
        follows the order in which keys were loaded.
        """
        super().__init__()
        self._keys = collections.OrderedDict()
        self.load(*args)

    def __contains__(self, alias):
        if isinstance(alias, PGPKey):
            return (alias.fingerprint, alias.is_public) in self._keys

        if isinstance(alias, str):
            alias = alias.replace(' ', '').upper()
            return any(alias in {k.fingerprint, k.fingerprint.keyid} | set(k.subkeys) for k in self)

        return False  # pragma: no cover

    def __len__(self):
        return len(self._keys)

    def __iter__(self):
        yield from self._keys.values()

    def __repr__(self):
        return "<PGPKeyring [{:d} keys] at 0x{:02X}>".format(len(self), id(self))

    def _add_key(self, pgpkey):
        if not pgpkey.is_primary:
            raise PGPError("Only primary keys can be added to a keyring")

        self._keys.setdefault((pgpkey.fingerprint, pgpkey.is_public), pgpkey)
        return pgpkey.fingerprint

    def load(self, *args):
        r"""
        Load all keys provided into this keyring object.

        :param \*args: Each arg in ``args`` can be a :py:class:`PGPKey` instance, ASCII-armored or binary key data
                       as accepted by :py:meth:`PGPKey.from_blob`, or a ``list`` or ``tuple`` of these.
        :returns: a ``set`` containing the unique fingerprints of all of the keys that were loaded during this operation.
        """
        loaded = set()

        for arg in args:
            if isinstance(arg, (list, tuple)):
                loaded |= self.load(*arg)

            elif isinstance(arg, PGPKey):
                loaded.add(self._add_key(arg))

            elif isinstance(arg, (str, bytes, bytearray)):
                key, others = PGPKey.from_blob(arg)
                for k in itertools.chain([key], others.values()):
                    loaded.add(self._add_key(k))

            else:
                raise TypeError("Cannot load {:s} into a keyring".format(type(arg).__name__))

        return loaded

    def get_keyrings(self, fragment):
        """
        Every key with a User ID containing ``fragment``. The match is a case-sensitive substring match
        against the whole User ID text.

        :param fragment: part of a User ID
        :type fragment: ``str``
        :returns: a ``list`` of :py:obj:`PGPKey`, in load order
        """
        return [key for key in self if any(fragment in uid.userid for uid in key.userids)]

    def by_fingerprint(self, fingerprint):
        """
        The key with the given fingerprint or Key ID, searching subkeys as well. Returns the primary key.

        :raises: :py:exc:`KeyError` if no key matches
        """
        fingerprint = str(fingerprint).replace(' ', '')
        for key in self:
            if fingerprint == key.fingerprint or fingerprint == key.fingerprint.keyid:
                return key

            for subkey in key.subkeys.values():
                if fingerprint == subkey.fingerprint or fingerprint == subkey.fingerprint.keyid:
                    return key

        raise KeyError(fingerprint)
