"""Accord-Engine exception hierarchy."""


class AccordError(Exception):
    """Base exception for all Accord errors."""

    def __init__(self, message: str = "", code: str = "ACCORD_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ContractError(AccordError):
    """Raised when an operation on a contract is refused."""

    def __init__(self, message: str = "Contract operation refused", code: str = "CONTRACT_ERROR"):
        super().__init__(message, code=code)


class ContractNotFoundError(ContractError):
    """Raised when a contract cannot be found in the store."""

    def __init__(self, message: str = "Contract not found"):
        super().__init__(message, code="NOT_FOUND")


class ValidationError(ContractError):
    """Raised when operation input is malformed. Nothing is applied."""

    def __init__(
        self,
        message: str = "Invalid contract input",
        fields: list[str] | None = None,
        code: str = "VALIDATION_ERROR",
    ):
        self.fields = list(fields or [])
        super().__init__(message, code=code)


class InvalidTransitionError(ValidationError):
    """Raised when a status change is not in the transition table."""

    def __init__(self, from_status: str, to_status: str, allowed: list[str] | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = list(allowed or [])
        targets = ", ".join(self.allowed) if self.allowed else "none (terminal status)"
        super().__init__(
            f"Illegal status transition {from_status} -> {to_status}; "
            f"allowed from {from_status}: {targets}",
            fields=["status"],
            code="INVALID_TRANSITION",
        )


class SignatureError(ContractError):
    """Raised when a signature cannot be accepted. Nothing is recorded."""

    def __init__(self, message: str = "Signature rejected"):
        super().__init__(message, code="SIGNATURE_ERROR")


class TemplateError(ContractError):
    """Raised when a template is missing or fails to compile or render."""

    def __init__(self, message: str = "Template error"):
        super().__init__(message, code="TEMPLATE_ERROR")


class ConflictError(ContractError):
    """Raised when an optimistic-concurrency write loses. Retry with a fresh load."""

    def __init__(
        self,
        contract_id: str,
        expected_version: int | None = None,
        actual_version: int | None = None,
        message: str = "",
    ):
        self.contract_id = contract_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if not message:
            message = (
                f"Contract {contract_id} was modified concurrently "
                f"(expected version {expected_version}, found {actual_version}); reload and retry"
            )
        super().__init__(message, code="CONFLICT")
