"""
Task subsystem.

Components:
- task_models.py: data structures (Task, TaskStatus, TaskEvent, EventKind)
- task_events.py: JSON line -> TaskEvent decoding
- task_reconciler.py: in-memory task table, the single mutator of task state
- task_retention.py: "recent finished tasks" view and storage bound
- task_sweeper.py: periodic demotion of stale active tasks
"""
