"""Reporting exports for scenario results."""

from .export import events_frame, export_csv, export_events_csv, export_json, snapshots_frame

__all__ = [
    "events_frame",
    "export_csv",
    "export_events_csv",
    "export_json",
    "snapshots_frame",
]
