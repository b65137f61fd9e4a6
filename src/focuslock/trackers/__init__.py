"""Process tracking components."""

from focuslock.trackers.process_inspector import ProcessInfo, ProcessInspector

__all__ = ["ProcessInfo", "ProcessInspector"]
