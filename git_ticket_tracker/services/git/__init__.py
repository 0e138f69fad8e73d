"""Git access for the detection engine.

Branch readers answer "which branch is checked out" and the commit helper
answers "which commit does HEAD resolve to".
"""

from .branch_reader import (
    BranchReader,
    HeadFileBranchReader,
    GitCommandBranchReader,
    create_branch_reader,
    parse_head,
)
from .commits import read_head_commit

__all__ = [
    "BranchReader",
    "HeadFileBranchReader",
    "GitCommandBranchReader",
    "create_branch_reader",
    "parse_head",
    "read_head_commit",
]
