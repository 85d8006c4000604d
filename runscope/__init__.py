"""
Runscope: GitHub Actions monitor for the terminal

- Live dashboard of workflow runs and their jobs
- Streaming, searchable and filterable job logs
- Run comparison, artifacts, rerun/cancel/dispatch actions
- Watch mode with completion notifications and hooks
"""

__version__ = "0.1.0"
__all__ = [
    "__version__",
]
