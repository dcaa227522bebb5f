"""Tracking orchestration components."""

from .events import Event, EventBus, Plugin, TrackingReport, TrackingRun, UnitFailure
from .fetcher import FetchedDocument, HttpFetcher
from .filter import FilterRegistry
from .tracker import Archivist

__all__ = [
    "Archivist",
    "Event",
    "EventBus",
    "FetchedDocument",
    "FilterRegistry",
    "HttpFetcher",
    "Plugin",
    "TrackingReport",
    "TrackingRun",
    "UnitFailure",
]
