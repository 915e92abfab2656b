from gitfarm.core.commits.batch import (
    CommitAuthor,
    CommitBatchError,
    CommitBatchResult,
    CommitDescriptor,
    backdated_descriptors,
    build_commit_chain,
    pattern_descriptors,
    validate_repository,
)
from gitfarm.core.commits.repository import (
    RepoState,
    get_repo_state,
    initialize_repository,
    push_changes,
)

__all__ = [
    "CommitAuthor",
    "CommitBatchError",
    "CommitBatchResult",
    "CommitDescriptor",
    "RepoState",
    "backdated_descriptors",
    "build_commit_chain",
    "get_repo_state",
    "initialize_repository",
    "pattern_descriptors",
    "push_changes",
    "validate_repository",
]
