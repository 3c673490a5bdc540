"""Error taxonomy shared by the registry, the HTTP API and the client."""


class ProcessControlError(Exception):
    """Base class for every process-control failure."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidArgumentError(ProcessControlError):
    """Blank or malformed input."""

    code = "INVALID_ARGUMENT"
    status_code = 400


class ProcessNotFoundError(ProcessControlError):
    """No tracked process has the requested id or name."""

    code = "NOT_FOUND"
    status_code = 404


class TerminationFailureError(ProcessControlError):
    """The OS refused to terminate the process or termination was not confirmed."""

    code = "TERMINATION_FAILURE"
    status_code = 409


class LaunchFailureError(ProcessControlError):
    """The OS refused to create the process."""

    code = "LAUNCH_FAILURE"
    status_code = 422


class NetworkFailureError(ProcessControlError):
    """The service could not be reached."""

    code = "NETWORK_FAILURE"
    status_code = 503


class RequestTimeoutError(ProcessControlError):
    """The service did not answer within the request timeout."""

    code = "TIMEOUT"
    status_code = 504


_ERRORS_BY_CODE: dict[str, type[ProcessControlError]] = {
    cls.code: cls
    for cls in (
        ProcessControlError,
        InvalidArgumentError,
        ProcessNotFoundError,
        TerminationFailureError,
        LaunchFailureError,
        NetworkFailureError,
        RequestTimeoutError,
    )
}


def error_for_code(code: str | None, message: str) -> ProcessControlError:
    """Rebuild the error class matching a wire error code."""
    cls = _ERRORS_BY_CODE.get(code or "", ProcessControlError)
    return cls(message)
