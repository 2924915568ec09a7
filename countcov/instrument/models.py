"""
Data model for instrumentation metadata.

An instrumentation pass produces one Metadata record per file: the ordered
list of coverage entries plus the branch groups they belong to. The
runtime store is keyed by the same entry keys.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr


class EntryKind(str, Enum):
    """Kinds of coverable units."""

    STATEMENT = "statement"
    BRANCH = "branch"
    FUNCTION = "function"


class BranchConstruct(str, Enum):
    """Decision points that produce a branch group."""

    IF = "if"
    TERNARY = "ternary"
    LOGICAL = "logical"
    MATCH = "match"
    WHILE = "while"
    FOR = "for"
    TRY = "try"


class Location(BaseModel):
    """Source range of a node (1-based lines, 0-based columns)."""

    model_config = ConfigDict(frozen=True)

    start_line: int = Field(..., description="First line of the range")
    start_column: int = Field(..., description="Column offset on the first line")
    end_line: int = Field(..., description="Last line of the range")
    end_column: int = Field(..., description="End column offset on the last line")

    def __str__(self) -> str:
        return f"{self.start_line}:{self.start_column}-{self.end_line}:{self.end_column}"


class BranchGroup(BaseModel):
    """One decision point and the number of arms it has."""

    model_config = ConfigDict(frozen=True)

    group_id: int = Field(..., description="Identifier shared by all arms of the group")
    construct_type: BranchConstruct = Field(..., description="Construct that produced the group")
    arms: int = Field(..., ge=1, description="Number of arms in the group")
    location: Location = Field(..., description="Range of the whole construct")


class CoverageEntry(BaseModel):
    """One instrumentable unit."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(..., description="Coverage key, unique within the file")
    kind: EntryKind = Field(..., description="Statement, branch or function")
    location: Location = Field(..., description="Source range of the unit")

    # Branch entries only
    group_id: int | None = Field(default=None, description="Branch group identifier")
    branch_index: int | None = Field(default=None, description="Arm position within its group")

    # Function entries only
    name: str | None = Field(default=None, description="Function name")


class Metadata(BaseModel):
    """
    Per-file instrumentation record.

    Entries are kept in visitation order. Keys are unique: registering an
    entry whose key is already present is refused, which is how a second
    pass over the same nodes is detected.
    """

    filename: str = Field(..., description="File the metadata describes")
    entries: list[CoverageEntry] = Field(default_factory=list, description="Entries in visit order")
    groups: list[BranchGroup] = Field(default_factory=list, description="Branch groups")

    _index: dict[str, int] = PrivateAttr(default_factory=dict)

    def add(self, entry: CoverageEntry) -> bool:
        """Append an entry. Returns False when its key is already registered."""
        if self.get(entry.key) is not None:
            return False
        self._index[entry.key] = len(self.entries)
        self.entries.append(entry)
        return True

    def add_group(self, construct: BranchConstruct, arms: int, location: Location) -> BranchGroup:
        """Register a new branch group with the next free identifier."""
        group = BranchGroup(
            group_id=len(self.groups),
            construct_type=construct,
            arms=arms,
            location=location,
        )
        self.groups.append(group)
        return group

    def get(self, key: str) -> CoverageEntry | None:
        """Get an entry by key."""
        # Validated or deserialised instances start with an empty index
        if len(self._index) != len(self.entries):
            self._index = {entry.key: i for i, entry in enumerate(self.entries)}
        position = self._index.get(key)
        return None if position is None else self.entries[position]

    def keys(self) -> list[str]:
        """All entry keys in visitation order."""
        return [entry.key for entry in self.entries]

    def entries_of(self, kind: EntryKind) -> list[CoverageEntry]:
        """Entries of one kind, in visitation order."""
        return [entry for entry in self.entries if entry.kind == kind]

    def group(self, group_id: int) -> BranchGroup | None:
        """Get a branch group by identifier."""
        for group in self.groups:
            if group.group_id == group_id:
                return group
        return None
