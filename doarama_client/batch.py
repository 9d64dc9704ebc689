"""Turning track files into activities and visualisations.

Two error policies live here. :func:`upload_tracks` logs a failed file and
moves on to the next one. :func:`create_visualisation_from_tracks` stops at
the first failure and deletes every activity it already created.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from .client import Session
from .errors import DoaramaError, NothingToVisualiseError, TrackUploadError
from .models import Activity, ActivityInfo, Visualisation
from .retry import Cancellation

logger = logging.getLogger(__name__)


@dataclass
class UploadReport:
    """Outcome of :func:`upload_tracks`."""
    created: list[tuple[Path, Activity]] = field(default_factory=list)
    failed: list[TrackUploadError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def upload_tracks(
    session: Session,
    paths: Iterable[Path | str],
    type_id: Optional[int] = None,
    cancellation: Optional[Cancellation] = None,
    on_created: Optional[Callable[[Path, Activity], None]] = None,
) -> UploadReport:
    """Upload each track independently, logging and skipping failures.

    An activity whose upload succeeded but whose info could not be set is
    kept and reported through ``on_created``; the set-info failure is
    recorded in ``failed``. Cancellation stops the loop.
    """
    report = UploadReport()
    for path in map(Path, paths):
        try:
            with path.open("rb") as gps_track:
                activity = session.create_activity(path.name, gps_track, cancellation)
        except (DoaramaError, OSError) as e:
            logger.error("Failed to create activity from %s: %s", path, e)
            report.failed.append(TrackUploadError(path, e))
            if cancellation is not None and cancellation.cancelled:
                break
            continue

        report.created.append((path, activity))
        if on_created is not None:
            on_created(path, activity)

        if type_id is None:
            continue
        try:
            activity.set_info(ActivityInfo(type_id=type_id), cancellation)
        except DoaramaError as e:
            logger.error("Failed to set info on activity %s from %s: %s", activity.id, path, e)
            report.failed.append(TrackUploadError(path, e))
            if cancellation is not None and cancellation.cancelled:
                break
    return report


def rollback(activities: Iterable[Activity]) -> list[Activity]:
    """Delete ``activities``, logging failures. Returns the ones left behind.

    Runs without a cancellation signal so an aborted batch still cleans up.
    """
    left: list[Activity] = []
    for activity in activities:
        try:
            activity.delete()
            logger.warning("Rolled back activity %s", activity.id)
        except DoaramaError as e:
            logger.error("Failed to roll back activity %s: %s", activity.id, e)
            left.append(activity)
    return left


def create_visualisation_from_tracks(
    session: Session,
    paths: Iterable[Path | str],
    type_id: Optional[int] = None,
    cancellation: Optional[Cancellation] = None,
    on_created: Optional[Callable[[Path, Activity], None]] = None,
) -> Visualisation:
    """Upload tracks in order and combine them into one visualisation.

    All or nothing: on the first failure no further file is read, every
    activity created so far is deleted, and a :class:`TrackUploadError`
    naming the failing file is raised. A keyboard interrupt rolls back the
    same way and is then re-raised. An empty ``paths`` raises
    :class:`NothingToVisualiseError` without any request.
    """
    paths = [Path(p) for p in paths]
    if not paths:
        raise NothingToVisualiseError()

    activities: list[Activity] = []
    for path in paths:
        try:
            with path.open("rb") as gps_track:
                activity = session.create_activity(path.name, gps_track, cancellation)
            # tracked before set-info so a set-info failure rolls it back too
            activities.append(activity)
            if type_id is not None:
                activity.set_info(ActivityInfo(type_id=type_id), cancellation)
        except (DoaramaError, OSError) as e:
            logger.error("Failed to create activity from %s: %s", path, e)
            rollback(activities)
            raise TrackUploadError(path, e) from e
        except KeyboardInterrupt:
            logger.warning("Interrupted while uploading %s", path)
            rollback(activities)
            raise
        if on_created is not None:
            on_created(path, activity)

    try:
        return session.create_visualisation(activities, cancellation)
    except (DoaramaError, KeyboardInterrupt):
        rollback(activities)
        raise
