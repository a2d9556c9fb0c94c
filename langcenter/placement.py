"""
Exam placement: map a score onto the configured level bands.

Scores and band edges are whole numbers in [0, 100] and bands are
inclusive on both ends. Overlaps and gaps are not prevented at write time;
when bands overlap, the first band in (min_score, id) order wins.
``audit_thresholds`` reports both conditions for the settings page.
"""

from langcenter.models import LevelThreshold

SCORE_MIN = 0
SCORE_MAX = 100


def ordered_thresholds():
    return LevelThreshold.query.order_by(LevelThreshold.min_score.asc(), LevelThreshold.id.asc()).all()


def find_threshold(score, thresholds=None):
    """Return the first threshold containing ``score``, or None."""
    if thresholds is None:
        thresholds = ordered_thresholds()
    for threshold in thresholds:
        if threshold.contains(score):
            return threshold
    return None


def find_level(score, thresholds=None):
    """Return the level label for ``score``, or None when no band contains it."""
    threshold = find_threshold(score, thresholds)
    return threshold.level if threshold else None


def audit_thresholds(thresholds=None):
    """
    Report overlapping bands and uncovered ranges of [0, 100].

    Scores are whole numbers, so a band ending at 30 followed by one
    starting at 31 is contiguous.

    Returns:
        dict: {"overlaps": [...], "gaps": [...], "ok": bool}
    """
    if thresholds is None:
        thresholds = ordered_thresholds()
    bands = sorted(thresholds, key=lambda t: (t.min_score, t.id or 0))

    overlaps = []
    for i, first in enumerate(bands):
        for second in bands[i + 1:]:
            if second.min_score > first.max_score:
                break
            overlaps.append({
                'levels': [first.level, second.level],
                'range': [second.min_score, min(first.max_score, second.max_score)],
            })

    gaps = []
    covered = SCORE_MIN - 1
    for band in bands:
        if band.max_score < SCORE_MIN or band.min_score > SCORE_MAX:
            continue
        if band.min_score > covered + 1:
            gaps.append([covered + 1, band.min_score - 1])
        covered = max(covered, band.max_score)
    if covered < SCORE_MAX:
        gaps.append([covered + 1, SCORE_MAX])

    return {'overlaps': overlaps, 'gaps': gaps, 'ok': not overlaps and not gaps}
