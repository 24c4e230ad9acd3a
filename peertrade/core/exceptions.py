"""
Peertrade Exception Hierarchy

All exceptions inherit from PeertradeError for easy catching.
Every exception carries a stable `code` identifying the abort reason.
"""


class PeertradeError(Exception):
    """Base exception for all Peertrade errors"""

    code = "PEERTRADE_ERROR"

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code}] {self.message} ({details_str})"
        return f"[{self.code}] {self.message}"


class ValidationError(PeertradeError):
    """Raised when the order encoding is malformed"""
    code = "INVALID_ENCODING"


class ConfigurationError(PeertradeError):
    """Raised when settlement configuration is invalid"""
    code = "INVALID_CONFIGURATION"


class AuthorizationError(PeertradeError):
    """Raised when the caller or the signature is not authorized"""
    code = "NOT_AUTHORIZED"

    def __init__(self, message: str, details: dict = None, code: str = None):
        super().__init__(message, details)
        if code is not None:
            self.code = code


class OrderExpiredError(PeertradeError):
    """Raised when the order expiration is in the past"""
    code = "TRANSFER_EXPIRED"


class ReplayError(PeertradeError):
    """Raised when a claim has already reached a terminal state"""
    code = "TRANSFER_REPLAYED"


class TransferAlreadyPerformedError(ReplayError):
    """Raised when the claim was already performed"""
    code = "TRANSFER_ALREADY_PERFORMED"


class TransferCancelledError(ReplayError):
    """Raised when the claim was cancelled by its sender"""
    code = "TRANSFER_CANCELLED"


class InsufficientBalanceOrAllowanceError(PeertradeError):
    """Raised when the fee payer cannot cover the fee sum"""
    code = "INSUFFICIENT_BALANCE_OR_ALLOWANCE"


class AssetNotAllowedError(PeertradeError):
    """Raised when the asset delegate is not approved for the asset"""
    code = "NFTOKEN_NOT_ALLOWED"


class FeeOverflowError(PeertradeError):
    """Raised when the fee sum exceeds the uint256 range"""
    code = "FEE_OVERFLOW"


class CollaboratorError(PeertradeError):
    """Raised when a ledger, registry or delegate fails during execution"""
    code = "COLLABORATOR_FAILURE"


class StaticCallViolation(PeertradeError):
    """Raised when core state is mutated inside a read-only query"""
    code = "STATIC_CALL_VIOLATION"


class StateStoreError(PeertradeError):
    """Raised when the transfer state journal cannot be read or written"""
    code = "STATE_STORE_FAILURE"
