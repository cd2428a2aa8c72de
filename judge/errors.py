class JudgeError(Exception):
    pass


class UnsupportedLanguageError(JudgeError, ValueError):
    """Language tag is not known to the executor at all."""

    def __init__(self, language: str):
        super().__init__(f'language {language!r} is not supported')
        self.language = language


class LanguageNotAvailableError(JudgeError, ValueError):
    """Language is known but the question does not allow it."""

    def __init__(self, language: str):
        super().__init__(f'language {language!r} is not available for this question')
        self.language = language


class LanguageNotImplementedError(JudgeError, ValueError):
    """Language is registered but has no working runtime yet."""

    def __init__(self, language: str):
        super().__init__(f'execution for {language!r} is not implemented yet')
        self.language = language


class NoTestCasesError(JudgeError, ValueError):
    pass


class InvalidQuestionError(JudgeError, ValueError):
    pass


class QuestionNotFoundError(JudgeError, LookupError):
    def __init__(self, question_id):
        super().__init__(f'question {question_id} not found')
        self.question_id = question_id


class SandboxUnavailableError(JudgeError):
    pass


class RecordingError(JudgeError):
    pass
