""" decorators.py
"""
import contextlib
import functools
import logging

from functools import singledispatch

from .errors import PGPError

__all__ = ['classproperty',
           'sdmethod',
           'sdproperty',
           'KeyAction']

logger = logging.getLogger(__name__)


def classproperty(fget):
    class ClassProperty(object):
        def __init__(self, fget):
            self.fget = fget
            self.__doc__ = fget.__doc__

        def __get__(self, cls, owner):
            return self.fget(owner)

        def __set__(self, obj, value):  # pragma: no cover
            raise AttributeError("Read-only attribute")

        def __delete__(self, obj):  # pragma: no cover
            raise AttributeError("Read-only attribute")

    return ClassProperty(fget)


def sdmethod(meth):
    """
    Wrap ``meth`` in :py:func:`functools.singledispatch`, dispatching on the type of the first
    argument after ``self`` instead of on ``self``.
    """
    sd = singledispatch(meth)

    def wrapper(obj, *args, **kwargs):
        return sd.dispatch(args[0].__class__)(obj, *args, **kwargs)

    wrapper.register = sd.register
    wrapper.dispatch = sd.dispatch
    wrapper.registry = sd.registry
    functools.update_wrapper(wrapper, meth)
    return wrapper


def sdproperty(fget):
    """
    A property whose setter dispatches on the type of the value being assigned.
    Setters for each accepted type are added with ``@prop.register``.
    """
    def defset(obj, val):  # pragma: no cover
        raise TypeError(str(val.__class__))

    class SDProperty(property):
        def register(self, cls=None, fset=None):
            return self.fset.register(cls, fset)

        def setter(self, fset):
            self.register(object, fset)
            return type(self)(self.fget, self.fset, self.fdel, self.__doc__)

    return SDProperty(fget, sdmethod(defset))


class KeyAction(object):
    """
    Guards a :py:obj:`~pgpstream.pgp.PGPKey` method. The wrapped method runs on the first key in ring
    order (the primary, then each subkey in the order it was added) whose self-signature grants
    at least one of ``usage``; every keyword in ``conditions`` must also match the named attribute of
    the primary key.
    """
    def __init__(self, *usage, **conditions):
        super().__init__()
        self.flags = set(usage)
        self.conditions = conditions

    @contextlib.contextmanager
    def usage(self, key):
        em = {}
        em['keyid'] = key.fingerprint.keyid
        em['flags'] = ', '.join(flag.name for flag in self.flags)

        if len(self.flags):
            for _key in key.ring_order():
                if self.flags & set(_key.usage_flags):
                    break

            else:
                raise PGPError("Key {keyid:s} does not have the required usage flag {flags:s}".format(**em))

        else:
            _key = key

        if _key is not key:
            em['subkeyid'] = _key.fingerprint.keyid
            logger.debug("Key {keyid:s} does not have the required usage flag {flags:s}; using subkey {subkeyid:s}"
                         "".format(**em))

        yield _key

    def check_attributes(self, key):
        for attr, expected in self.conditions.items():
            if getattr(key, attr) != expected:
                raise PGPError("Expected: {attr:s} == {eval:s}. Got: {got:s}"
                               "".format(attr=attr, eval=str(expected), got=str(getattr(key, attr))))

    def __call__(self, action):
        @functools.wraps(action)
        def _action(key, *args, **kwargs):
            if key._key is None:
                raise PGPError("No key!")

            with self.usage(key) as _key:
                self.check_attributes(key)
                return action(_key, *args, **kwargs)

        return _action
