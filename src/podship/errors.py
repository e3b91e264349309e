"""Domain errors for podship."""


class DeployError(RuntimeError):
    """Raised when a deployment operation cannot continue safely."""


class ConfigError(DeployError):
    """The deploy configuration is missing, malformed or incomplete."""


class PreconditionError(DeployError):
    """A local or remote precondition does not hold; nothing was changed."""


class OperationCancelled(DeployError):
    """The operator declined a confirmation prompt."""


class BuildError(DeployError):
    """Local compilation or template rendering failed."""


class TransferError(DeployError):
    """A file transfer to or from the remote host failed."""


class ActivationError(DeployError):
    """The remote image rebuild or service restart failed."""


class VerificationError(DeployError):
    """The service did not reach a healthy state after activation."""


class RollbackError(DeployError):
    """Restoring the previous state failed. Manual intervention is required."""
