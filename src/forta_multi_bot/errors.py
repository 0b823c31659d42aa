from __future__ import annotations


class ConfigurationError(ValueError):
    """Raised while loading or validating bot configuration."""


class MalformedExpression(ConfigurationError):
    pass


class UnsupportedOperator(ConfigurationError):
    pass


class UnsupportedLiteral(ConfigurationError):
    pass


class EvaluationError(RuntimeError):
    pass


class UnknownField(EvaluationError):
    def __init__(self, field_name: str, source_name: str, available: list[str]) -> None:
        self.field_name = field_name
        self.source_name = source_name
        self.available = available
        super().__init__(
            f"Argument name {field_name} does not match any of the arguments found in "
            f"{source_name}: {', '.join(available)}"
        )


class TransientIOError(RuntimeError):
    """A chain provider request failed."""


class ConfigValidationFailed(ConfigurationError):
    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Configuration is invalid:\n  - " + "\n  - ".join(errors))
