"""
Error taxonomy for Check-in Service.

- OracleUnavailable: network/auth/parse failure from any recognition or quality oracle
- ValidationError: rejected locally before any oracle call
- CredentialMissing: oracle keys not configured (raised before any network call)
- StoreError: record store persistence failure
"""


class CheckinError(Exception):
    """Base class for all service errors."""


class OracleUnavailable(CheckinError):
    """An external oracle could not be reached or returned an unusable answer."""

    def __init__(self, oracle: str, message: str):
        super().__init__(f'{oracle} unavailable: {message}')
        self.oracle = oracle
        self.message = message


class CredentialMissing(CheckinError):
    """Oracle credentials are not configured."""

    def __init__(self, oracle: str, detail: str = 'credentials not configured'):
        super().__init__(f'{oracle} {detail}')
        self.oracle = oracle


class ValidationError(CheckinError):
    """Input rejected before reaching any oracle or store."""


class StoreError(CheckinError):
    """The record store failed to persist or fetch data."""
