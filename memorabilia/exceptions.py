class MemorabiliaError(Exception):
    """Base class for every error raised by the game session engine."""


class InvalidTier(MemorabiliaError):
    """The difficulty tier is not one of the supported tiers."""


class InvalidInput(MemorabiliaError):
    """Scoring input is negative or not finite."""


class SessionStateViolation(MemorabiliaError):
    """A local invariant was broken, e.g. flipping a tile that is already face-up."""


class LedgerError(MemorabiliaError):
    """Base class for failures while executing an operation through a LedgerBridge."""


class InvalidAccount(LedgerError):
    """The account rejected the call before it was submitted."""


class ConfirmationTimeout(LedgerError):
    """The call was submitted but its confirmation did not resolve in time."""

    def __init__(self, message: str, transaction_hash: str | None = None):
        super().__init__(message)
        self.transaction_hash = transaction_hash


class ProviderError(LedgerError):
    """Any other failure reported by the remote provider."""


class MalformedReceipt(LedgerError):
    """The execution result could not be decoded into a domain event."""


class IndexerUnreachable(MemorabiliaError):
    """The indexing service could not be queried."""


class RecordVersionError(MemorabiliaError):
    """A persisted record carries a version this build cannot read."""


class WalletRejection(Exception):
    """Raised by a WalletProvider when the account refuses to sign or send a call."""
