from .types import Key
from .types import Opaque
from .types import Packet
from .types import Primary
from .types import Private
from .types import Public
from .types import Sub

from .packets import *  # NOQA

__all__ = ['Key',
           'Opaque',
           'Packet',
           'Primary',
           'Private',
           'Public',
           'Sub',
           'PKESessionKeyV3',
           'SignatureV4',
           'OnePassSignatureV3',
           'PubKeyV4',
           'PrivKeyV4',
           'PubSubKeyV4',
           'PrivSubKeyV4',
           'CompressedData',
           'SKEData',
           'LiteralData',
           'UserID',
           'IntegrityProtectedSKEDataV1',
           'MDC']
