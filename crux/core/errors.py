from __future__ import annotations

from typing import Any


class CruxError(Exception):
    pass


class InvalidChangesError(CruxError):
    def __init__(self, errors: dict[str, list[str]], record: Any = None):
        self.errors = errors
        self.record = record
        fields = ", ".join(sorted(errors)) or "-"
        super().__init__(f"Invalid changes for fields: {fields}")


class RecordNotFound(CruxError, LookupError):
    pass


class MultipleRecordsFound(CruxError, LookupError):
    pass


class UnknownFieldError(CruxError, ValueError):
    def __init__(self, model: type, field: str):
        self.model = model
        self.field = field
        super().__init__(f'Unknown field "{field}" for {model.__name__}')


class UnknownOptionError(CruxError, TypeError):
    def __init__(self, keys):
        self.keys = sorted(keys)
        super().__init__("Unsupported repository options: " + ", ".join(self.keys))


class OperationDisabledError(CruxError, AttributeError):
    def __init__(self, operation: str, model: type):
        self.operation = operation
        super().__init__(f'Operation "{operation}" is disabled for {model.__name__}')
