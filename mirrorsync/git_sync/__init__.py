"""Git synchronization engine for mirrorsync."""

from .utils import GitSyncResult, create_git_sync_result
from .repository import VersionedRepository
from .repository_info import RepositoryHealth, FileState
from .conflict import Resolution, resolve, is_binary_path
from .error_types import FailureKind
from .error_strategies import classify_failure
from .recovery import RecoveryMerger, RecoveryReport, RECONCILIATION_MESSAGE
from .pull import PullProtocol, PullState

__all__ = [
    'GitSyncResult',
    'create_git_sync_result',
    'VersionedRepository',
    'RepositoryHealth',
    'FileState',
    'Resolution',
    'resolve',
    'is_binary_path',
    'FailureKind',
    'classify_failure',
    'RecoveryMerger',
    'RecoveryReport',
    'RECONCILIATION_MESSAGE',
    'PullProtocol',
    'PullState'
]
