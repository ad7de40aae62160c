"""Error taxonomy for the sandbox orchestration layer."""

from __future__ import annotations


class SandboxError(Exception):
    kind = "sandbox"


class TransientTransportError(SandboxError):
    kind = "transient"


class RetryExhaustedError(SandboxError):
    kind = "retry_exhausted"

    def __init__(self, description: str, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{description} failed after {attempts} attempts: {last_error}")


class CommandExitError(SandboxError):
    kind = "command_exit"

    def __init__(self, exit_code: int, stdout: str = "", stderr: str = "") -> None:
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(f"Command exited with code {exit_code}")


class UnrecoverableSandboxStateError(SandboxError):
    kind = "unrecoverable_state"

    def __init__(self, sandbox_id: str, state: str) -> None:
        self.sandbox_id = sandbox_id
        self.state = state
        super().__init__(f"Sandbox {sandbox_id} is in unrecoverable state: {state}")


class SandboxNotFoundError(SandboxError):
    kind = "not_found"


class AllCredentialsExhaustedError(SandboxError):
    kind = "credentials_exhausted"

    def __init__(self, attempts: int, last_error: BaseException | None) -> None:
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"All providers failed to create sandbox after {attempts} attempts. "
            f"Last error: {last_error}"
        )


class NoCredentialsError(SandboxError):
    kind = "no_credentials"


class CancelledError(SandboxError):
    kind = "cancelled"


class RepositorySetupError(SandboxError):
    kind = "repository_setup"


class SandboxOperationError(SandboxError):
    kind = "operation"


class ConfigurationError(SandboxError):
    kind = "configuration"
