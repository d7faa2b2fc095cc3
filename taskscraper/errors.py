"""
Error taxonomy shared by every layer of the task scraper.

Each failure carries exactly one :class:`ErrorKind`. Callers decide whether to
retry, how loudly to log and what to tell users from the kind alone, so the
kind of an :class:`AppError` never changes after construction.

Errors form an explicit, singly-linked cause chain (``AppError.cause``). Kind
lookups walk that chain directly instead of relying on isinstance scans of
arbitrary exception graphs.
"""
import os
import traceback
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

# Maximum number of frames captured per error
MAX_STACK_FRAMES = 5


class ErrorKind(str, Enum):
    """Closed set of error kinds."""
    UNKNOWN = "Unknown"
    INTERNAL = "Internal"
    SYSTEM = "System"
    UNAUTHORIZED = "Unauthorized"
    FORBIDDEN = "Forbidden"
    INVALID_INPUT = "InvalidInput"
    CONFLICT = "Conflict"
    NOT_FOUND = "NotFound"
    EXECUTION_FAILED = "ExecutionFailed"
    PARSING_FAILED = "ParsingFailed"
    TIMEOUT = "Timeout"
    UNAVAILABLE = "Unavailable"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class StackFrame:
    """A single captured call-site."""
    file: str
    line: int
    function: str


def _capture_stack(skip: int) -> List[StackFrame]:
    # extract_stack() lists outermost first; keep the innermost frames above the
    # error constructors themselves.
    frames = traceback.extract_stack()[:-skip]
    return [
        StackFrame(file=os.path.basename(f.filename), line=f.lineno or 0, function=f.name)
        for f in reversed(frames[-MAX_STACK_FRAMES:])
    ]


class AppError(Exception):
    """
    Typed application error.

    Attributes:
        kind: Error kind, immutable after construction
        message: Human readable message
        cause: Wrapped error, if any
        stack: Call-sites captured at creation (innermost first, at most 5)
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
        *,
        _skip: int = 2,
    ):
        super().__init__(message)
        self._kind = kind
        self.message = message
        self.cause = cause
        self.stack = _capture_stack(_skip)
        if cause is not None:
            self.__cause__ = cause

    @property
    def kind(self) -> ErrorKind:
        return self._kind

    def __str__(self) -> str:
        if self.cause is not None:
            return f"[{self._kind}] {self.message}: {self.cause}"
        return f"[{self._kind}] {self.message}"

    def __repr__(self) -> str:
        return f"AppError(kind={self._kind.value!r}, message={self.message!r})"

    def format_detail(self) -> str:
        """Render the error with its captured frames and full cause chain."""
        lines = [f"[{self._kind}] {self.message}"]
        if self.stack:
            lines.append("Stack trace:")
            lines.extend(f"\t{f.file}:{f.line} {f.function}" for f in self.stack)
        if self.cause is not None:
            lines.append("Caused by:")
            if isinstance(self.cause, AppError):
                lines.append(self.cause.format_detail())
            else:
                lines.append(f"\t{self.cause}")
        return "\n".join(lines)


def new(kind: ErrorKind, message: str) -> AppError:
    """Create an error without a cause."""
    return AppError(kind, message, _skip=3)


def wrap(err: Optional[BaseException], kind: ErrorKind, message: str) -> Optional[AppError]:
    """Wrap ``err`` with a kind and context message. Returns None for None."""
    if err is None:
        return None
    return AppError(kind, message, cause=err, _skip=3)


def _next_in_chain(err: BaseException) -> Optional[BaseException]:
    if isinstance(err, AppError):
        return err.cause
    return err.__cause__


def is_kind(err: Optional[BaseException], kind: ErrorKind) -> bool:
    """Check whether any AppError in the cause chain carries ``kind``."""
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, AppError) and err.kind == kind:
            return True
        err = _next_in_chain(err)
    return False


def kind_of(err: Optional[BaseException]) -> ErrorKind:
    """Return the kind of the outermost AppError in the chain, or UNKNOWN."""
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        if isinstance(err, AppError):
            return err.kind
        err = _next_in_chain(err)
    return ErrorKind.UNKNOWN


def root_cause(err: Optional[BaseException]) -> Optional[BaseException]:
    """Return the innermost error of the cause chain."""
    if err is None:
        return None
    seen = {id(err)}
    while True:
        nxt = _next_in_chain(err)
        if nxt is None or id(nxt) in seen:
            return err
        seen.add(id(nxt))
        err = nxt
