class GhrmError(Exception):
    pass


class ValidationError(GhrmError):
    pass


class InvalidUsernameError(ValidationError):
    pass


class OperationCancelledError(GhrmError):
    pass


class CloneCancelledError(OperationCancelledError):
    def __init__(self, repo_name: str, reason: str = ""):
        message = f"clone of {repo_name} cancelled"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.repo_name = repo_name


class CommandFailedError(GhrmError):
    def __init__(self, message: str, stderr: str = "", returncode: int | None = None):
        super().__init__(message)
        self.stderr = stderr
        self.returncode = returncode


class CloneFailedError(CommandFailedError):
    def __init__(self, repo_name: str, stderr: str, returncode: int | None = None):
        super().__init__(f"failed to clone {repo_name}: {stderr}", stderr, returncode)
        self.repo_name = repo_name


class CommandNotAvailableError(GhrmError):
    def __init__(self, command: str):
        super().__init__(f"command {command} is not available in PATH")
        self.command = command


class ResponseParseError(GhrmError):
    pass


class CacheError(GhrmError):
    pass


class TTLParseError(GhrmError, ValueError):
    pass
