"""AI CLI hook entry points: activity counters and session-end traces."""

from shepherd.hooks.handlers import HOOKS, HookContext, run_hook

__all__ = ["HOOKS", "HookContext", "run_hook"]
