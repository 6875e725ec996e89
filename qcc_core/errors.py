"""
Error taxonomy for the QCC wallet core.

Every error carries a ``user_message``: one human-readable sentence that a
front end can show as-is.  Messages never contain key material or mnemonic
words; callers must not interpolate them either.
"""

from __future__ import annotations


class QCCError(Exception):
    """Base class for all wallet-core failures."""

    user_message = "The wallet operation failed."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)


class InvalidMnemonicError(QCCError, ValueError):
    user_message = "The recovery phrase is not a valid 12-word phrase."


class InvalidKeyFormatError(QCCError, ValueError):
    user_message = "The private key must be exactly 64 hexadecimal characters."


class InvalidAmountError(QCCError, ValueError):
    user_message = "Enter a valid positive amount."


class AuthenticationFailedError(QCCError):
    user_message = "Authentication failed. Check your password and try again."


class DecryptionFailedError(QCCError):
    user_message = "The key file could not be decrypted. It may be damaged or not a QCC key file."


class InvalidKeyFileError(DecryptionFailedError):
    user_message = "The key file does not contain a wallet."


class KeyNotFoundError(QCCError, KeyError):
    user_message = "No stored key was found for this wallet."

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else self.user_message


class KeySlotBusyError(QCCError):
    user_message = "Another transaction is already using this wallet key."


class KeyErasedError(QCCError):
    user_message = "The key is no longer available. Unlock the wallet again."


class ExpiredPaymentDescriptorError(QCCError):
    user_message = "This payment QR code has expired."

    def __init__(self, expiry: int, now: int):
        self.expiry = expiry
        self.now = now
        super().__init__(f"Payment descriptor expired at {expiry} (now {now})")


class NetworkError(QCCError):
    """Transport-level failure talking to the backend.

    The underlying exception is chained as ``__cause__``.
    """

    user_message = "Could not reach the QCC network. Try again later."


class RemoteTransactionError(QCCError):
    """The backend accepted the request but reported a failure in ``output``."""

    user_message = "The network rejected the transaction."

    def __init__(self, output: str, response: dict | None = None):
        self.output = output
        self.response = response or {}
        super().__init__(f"Failed to send transaction: {output}")
