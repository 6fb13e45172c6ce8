"""
Tasks package for the wedding invitation backend

Contains background tasks that run continuously during application lifetime.
"""
from .background import (
    init_tasks,
    stop_tasks,
    sweep_orphans,
    repair_references,
    run_sweep,
    auto_sweep_task,
)

__all__ = [
    'init_tasks',
    'stop_tasks',
    'sweep_orphans',
    'repair_references',
    'run_sweep',
    'auto_sweep_task',
]
