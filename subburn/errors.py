from __future__ import annotations


class AppError(RuntimeError):
    def __init__(self, message: str, code: int) -> None:
        super().__init__(message)
        self.code = code


class FilesystemError(AppError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code=6)


class PipelineCancelled(AppError):
    def __init__(self, message: str = "Processing was stopped") -> None:
        super().__init__(message, code=130)
