"""Usage-driven learning.

Composition:
    - `learning_system`: interaction history, pattern/server statistics,
      predictions, pruning sweep and snapshot persistence.
    - `snapshot_store`: snapshot storage protocol and JSON file store.
    - `suggestions`: optimization suggestion records and thresholds.
    - `sweeper`: periodic pattern sweep task.
"""
