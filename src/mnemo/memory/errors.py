"""Exception types raised by the memory components."""


class MnemoError(Exception):
    """Base class for memory pipeline errors."""


class ClassificationError(MnemoError):
    """The classification service failed or returned unusable output."""


class StoreError(MnemoError):
    """A memory store could not complete an operation."""
