"""
Synchronization core for offline-sync.

This package provides:
- The sync controller and its connection state machine
- The inbound change-stream consumer
- The outbound pending-mutation drainer
- Local edit helpers and connectivity supervision
"""

from .conflict import ConflictDecision, Resolution, resolve
from .consumer import EventConsumer, RecordType, RecordTypeRegistry
from .controller import SyncController
from .drainer import DrainResult, PendingMutationDrainer
from .local_edits import LOCAL_KEY_PREFIX, LocalEditor, is_local_key
from .observer import CallbackObserver, ObserverSet, SyncObserver
from .reconnect import ReconnectPolicy, cancellable_sleep
from .session import AuthSession, SessionProvider, StaticSessionProvider, require_session
from .supervisor import ConnectivitySupervisor

__all__ = [
    'ConflictDecision',
    'Resolution',
    'resolve',
    'EventConsumer',
    'RecordType',
    'RecordTypeRegistry',
    'SyncController',
    'DrainResult',
    'PendingMutationDrainer',
    'LOCAL_KEY_PREFIX',
    'LocalEditor',
    'is_local_key',
    'CallbackObserver',
    'ObserverSet',
    'SyncObserver',
    'ReconnectPolicy',
    'cancellable_sleep',
    'AuthSession',
    'SessionProvider',
    'StaticSessionProvider',
    'require_session',
    'ConnectivitySupervisor',
]
