"""Exceptions raised by the wikit credential store and its collaborators."""


class CredentialError(Exception):
    """Base exception for credential-related errors."""

    pass


class NotInitializedError(CredentialError):
    """Raised when the credential store is used before initialize()."""

    pass


class DuplicateInstanceError(CredentialError):
    """Raised when adding an instance whose id already exists."""

    pass


class InstanceNotFoundError(CredentialError):
    """Raised when a requested instance does not exist in the store."""

    pass


class InvalidInstanceError(CredentialError):
    """Raised when an instance record fails basic validation."""

    pass


class DecryptionFailedError(CredentialError):
    """Raised when a stored secret cannot be authenticated or decrypted."""

    pass


class MalformedInputError(CredentialError):
    """Raised when ciphertext, nonce or tag data cannot be parsed."""

    pass


class MigrationError(CredentialError):
    """Raised when a migration, import or export cannot proceed at all."""

    pass


class InstanceResolutionError(CredentialError):
    """
    Base for fatal errors while resolving the credential to use.

    Carries the ids that are available so the caller can show them to
    the user before exiting.
    """

    def __init__(self, message: str, available: list[str] | None = None) -> None:
        super().__init__(message)
        self.available = list(available or [])


class UnknownInstanceError(InstanceResolutionError):
    """Raised when neither the store nor the environment knows an instance."""

    pass


class NoInstancesConfiguredError(InstanceResolutionError):
    """Raised when no instance is configured anywhere."""

    pass
