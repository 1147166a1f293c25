"""
Error kinds raised and absorbed by the quiz session engine
"""


class QuizFlowError(Exception):
    """Base class for engine errors; carries a human-readable message"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class LoadFailure(QuizFlowError):
    """Quiz source unreachable or returned a malformed payload"""


class ValidationFailure(QuizFlowError):
    """Answer for an unknown question, or a malformed snapshot item"""


class SubmissionFailure(QuizFlowError):
    """Submission backend rejected the attempt or the network failed"""


class RestoreFailure(QuizFlowError):
    """Auth-redirect snapshot missing or corrupt"""


class InvalidTransitionError(QuizFlowError):
    """Operation called from a state that does not allow it"""

    def __init__(self, operation: str, status: str):
        super().__init__(f"Cannot {operation} while session is {status}")
        self.operation = operation
        self.status = status
