from __future__ import annotations


class ArchiveError(Exception):
    """Base for every error the archive pipeline raises on purpose."""


class ValidationError(ArchiveError):
    pass


class DuplicateError(ArchiveError):
    def __init__(self, day: int):
        super().__init__(f"Day {int(day)} is already archived")
        self.day = int(day)


class SequenceViolation(ArchiveError):
    # Not a failure: the state machine turns this into an approval prompt.
    def __init__(self, day: int, expected_day: int):
        super().__init__(f"Expected day {int(expected_day)}, got day {int(day)}")
        self.day = int(day)
        self.expected_day = int(expected_day)


class StoreFailure(ArchiveError):
    pass


class DeliveryFailure(ArchiveError):
    pass


class ExpiredContextError(ArchiveError):
    pass


class SchemaError(RuntimeError):
    pass
