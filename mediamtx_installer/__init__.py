"""MediaMTX installer (Python-first, transactional).

Core design goals:
- Every host change is paired with a compensating action
- Verify downloaded artifacts before anything is installed
- Idempotent re-runs that back up what they replace
- Architecture-aware artifact selection
- Centralized logging
"""

__all__ = []
