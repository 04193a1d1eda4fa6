"""Client-side try-on pipeline."""

from .orchestrator import AttemptState, TryOnAttempt, TryOnOrchestrator

__all__ = ["AttemptState", "TryOnAttempt", "TryOnOrchestrator"]
