"""Exceptions raised by the asset event ledger.

Chain validation problems are never raised; they are reported through
``ChainValidation``. The exceptions below signal caller bugs or write-path
failures.
"""


class LedgerError(Exception):
    """Base class for ledger errors."""


class CanonicalizationError(LedgerError, ValueError):
    """Event content cannot be turned into a canonical, hashable form."""


class ChainOrderError(LedgerError, ValueError):
    """A new event would sort before the current chain tail."""


class ChainConflictError(LedgerError):
    """Another writer appended to the same asset chain first."""


class ChainLockTimeout(LedgerError):
    """The per-asset append section could not be acquired in time."""


class ImmutableEventError(LedgerError):
    """A persisted event was about to be modified or deleted."""


class AssetNotFoundError(LedgerError, LookupError):
    """The asset does not exist (or belongs to another tenant)."""
