"""Reconciliation package: snapshot diffing, cycle coordination and scheduling."""
from reconciliation.diff import (
    ChangeEvent,
    FieldChange,
    ItemAdded,
    ItemChecked,
    ItemModified,
    ItemRemoved,
    ItemUnchecked,
    diff,
    filter_own_changes,
)
from reconciliation.coordinator import CoordinatorState, CycleResult, ReconciliationCoordinator
from reconciliation.scheduler import IntervalTrigger, ReconciliationScheduler, ReconciliationState

__all__ = [
    'ChangeEvent',
    'FieldChange',
    'ItemAdded',
    'ItemChecked',
    'ItemModified',
    'ItemRemoved',
    'ItemUnchecked',
    'diff',
    'filter_own_changes',
    'CoordinatorState',
    'CycleResult',
    'ReconciliationCoordinator',
    'IntervalTrigger',
    'ReconciliationScheduler',
    'ReconciliationState',
]
