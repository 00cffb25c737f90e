"""Services for the application."""
from .control_client import ControlClient
from .event_channel import EventChannel
from .finalizer import HydrateResult, fetch_final_snapshots
from .reconciler import ReconcileOptions, lifecycle_effect, reconcile
from .session_controller import SessionController, validate_config

__all__ = [
    "ControlClient",
    "EventChannel",
    "HydrateResult",
    "fetch_final_snapshots",
    "ReconcileOptions",
    "lifecycle_effect",
    "reconcile",
    "SessionController",
    "validate_config",
]
