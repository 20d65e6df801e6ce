"""EFI partition mounter (Python-first, observe-and-reconcile).

Core design goals:
- Discover and classify EFI system partitions from OS command output
- Privileged mutations behind an injected, cancellable executor
- One operation in flight at a time; snapshots swapped whole
- Centralized logging
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
