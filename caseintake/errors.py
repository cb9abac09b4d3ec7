class CaseIntakeError(Exception):
    pass


class MalformedInputError(CaseIntakeError, ValueError):
    pass


class CaseConflictError(CaseIntakeError):
    def __init__(self, case_id: str) -> None:
        super().__init__(f"Case with ID {case_id} already exists")
        self.case_id = case_id


class AuthorizationError(CaseIntakeError):
    pass


class CaseNotFoundError(CaseIntakeError, LookupError):
    pass


class ImportNotFoundError(CaseIntakeError, LookupError):
    pass


class ImportStateError(CaseIntakeError, RuntimeError):
    pass
