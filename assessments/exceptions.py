class IntegrityEngineError(Exception):
    """Base class for exam session integrity and grading errors."""


class SessionNotFound(IntegrityEngineError):
    def __init__(self, session_id):
        super().__init__(f"Exam session {session_id} not found")
        self.session_id = session_id


class ExamConfigMissing(IntegrityEngineError):
    def __init__(self, session_id):
        super().__init__(f"Exam configuration missing for session {session_id}")
        self.session_id = session_id


class AlreadyTerminal(IntegrityEngineError):
    """Raised internally when a session left IN_PROGRESS; callers replay instead of failing."""

    def __init__(self, session_id, status):
        super().__init__(f"Exam session {session_id} is already {status}")
        self.session_id = session_id
        self.status = status


class GradingInputInconsistent(IntegrityEngineError):
    def __init__(self, question_id):
        super().__init__(f"Question {question_id} has no matching definition")
        self.question_id = question_id


class ExamNotAvailable(IntegrityEngineError):
    """The exam cannot be started: inactive, no questions, or attempts used up."""
