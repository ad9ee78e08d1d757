# mathword/errors.py


class MathwordError(Exception):
    """Base class for all errors raised by mathword."""


class FormulaError(MathwordError):
    """A formula could not be turned into a node tree."""


class FormulaDepthError(FormulaError):
    def __init__(self, max_depth: int):
        super().__init__(f"formula nesting exceeds the maximum depth of {max_depth}")
        self.max_depth = max_depth


class AiServiceError(MathwordError):
    """The text correction service failed or returned nothing usable."""


class ApiKeyMissingError(AiServiceError):
    pass


class ApiKeyInvalidError(AiServiceError):
    pass


class RateLimitedError(AiServiceError):
    pass
