"""Error taxonomy for parse / resolve / write.

Every error is terminal for the single file operation in progress.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class SourceLocation:
    """1-based line / column of the offending syntax node."""
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


class ParseErrorKind(str, Enum):
    NO_RETURN_STATEMENT = "NoReturnStatement"
    NO_DEFAULT_EXPORT = "NoDefaultExport"
    UNRESOLVED_COMPONENT = "UnresolvedComponent"
    MALFORMED_ATTRIBUTE = "MalformedAttribute"
    INVALID_SYNTAX = "InvalidSyntax"
    UNSUPPORTED_SYNTAX = "UnsupportedSyntax"


class ResolutionErrorKind(str, Enum):
    UNKNOWN_COMPONENT = "UnknownComponent"


class WriteErrorKind(str, Enum):
    COMPONENT_TREE_INCONSISTENT = "ComponentTreeInconsistent"
    UNRESOLVED_IMPORT = "UnresolvedImport"


class MoveErrorKind(str, Enum):
    REJECTED = "InvalidMove"


class StudioSyncError(Exception):
    """Base class: carries a kind tag, the file and the location when known."""

    def __init__(
        self,
        kind: Enum,
        message: str,
        filepath: Optional[str] = None,
        location: Optional[SourceLocation] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.filepath = filepath
        self.location = location

    def __str__(self) -> str:
        where = ""
        if self.filepath:
            where = self.filepath
            if self.location:
                where += f":{self.location}"
            where += ": "
        elif self.location:
            where = f"{self.location}: "
        return f"[{self.kind.value}] {where}{self.message}"


class ParseError(StudioSyncError):
    pass


class ResolutionError(StudioSyncError):
    def __init__(self, kind: ResolutionErrorKind, message: str, name: str = "", filepath: Optional[str] = None):
        super().__init__(kind, message, filepath=filepath)
        self.name = name


class WriteError(StudioSyncError):
    pass


class InvalidMoveError(StudioSyncError):
    """A drag-and-drop move that cannot be applied (e.g. into its own selection)."""

    def __init__(self, message: str):
        super().__init__(MoveErrorKind.REJECTED, message)
