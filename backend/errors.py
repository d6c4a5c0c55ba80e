# errors.py
class StudyPackError(Exception):
    """Base class for every failure raised by the study pipeline, quiz engine and stores."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class TooShort(StudyPackError):
    def __init__(self, minimum: int, actual: int):
        super().__init__(
            f"Text is too short: {actual} characters, at least {minimum} required."
        )
        self.minimum = minimum
        self.actual = actual


class UpstreamError(StudyPackError):
    pass


class MalformedResponse(StudyPackError):
    pass


class PersistenceError(StudyPackError):
    pass


class NotFound(PersistenceError):
    pass


class Conflict(PersistenceError):
    pass


class Unauthorized(StudyPackError):
    pass


class QuizStateError(StudyPackError):
    pass


class Busy(StudyPackError):
    pass


class ExtractionError(StudyPackError):
    pass


class ConfigError(StudyPackError):
    pass
