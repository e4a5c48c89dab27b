"""Infrastructure layer — operational concerns for the mixer remote.

Modules:
    metrics     Prometheus metrics registry (console commands, group moves,
                reconciliations, connection state).
"""
