"""
Data maintenance jobs shared by the CLI and the token-gated endpoint.
"""

import random

from flask import current_app

from langcenter.extensions import db
from langcenter.models import SchoolClass, LevelThreshold
from langcenter.utils.constants import (
    BACKFILL_MIN_SESSIONS, BACKFILL_MAX_SESSIONS, DEFAULT_LEVEL_THRESHOLDS,
)


def backfill_class_sessions(rng=None):
    """
    Give every class a random session count in [12, 24].

    Returns:
        tuple: (total classes, classes updated)
    """
    rng = rng or random
    classes = SchoolClass.query.order_by(SchoolClass.id.asc()).all()
    updated = 0
    for school_class in classes:
        school_class.num_sessions = rng.randint(BACKFILL_MIN_SESSIONS, BACKFILL_MAX_SESSIONS)
        updated += 1
    db.session.flush()
    current_app.logger.info(f"Backfilled num_sessions on {updated}/{len(classes)} classes")
    return len(classes), updated


def seed_level_thresholds(replace=False):
    """
    Insert the default A1-C1 bands.

    Existing bands are kept unless ``replace`` is set.

    Returns:
        int: number of bands inserted
    """
    existing = LevelThreshold.query.count()
    if existing and not replace:
        return 0
    if replace:
        for threshold in LevelThreshold.query.all():
            db.session.delete(threshold)
        db.session.flush()

    for band in DEFAULT_LEVEL_THRESHOLDS:
        db.session.add(LevelThreshold(**band))
    db.session.flush()
    return len(DEFAULT_LEVEL_THRESHOLDS)
