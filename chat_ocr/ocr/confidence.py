"""
Confidence heuristics for engines that do not report a score.

Google Vision TEXT_DETECTION returns no confidence, so one is estimated from
the amount of text and the number of detected elements. This is a fixed
heuristic, not a measured probability.
"""

# (min text length, min detections, confidence), checked in order
_TIERS = (
    (100, 10, 0.9),
    (50, 5, 0.8),
    (20, 0, 0.7),
)

_FLOOR = 0.6


def estimate_confidence(text_length: int, detection_count: int) -> float:
    """
    Estimate extraction confidence (0.0 to 1.0).

    Args:
        text_length: Length of the full detected text
        detection_count: Number of text annotations returned

    Returns:
        0.0 when nothing was detected, otherwise a tier value

    Example:
        >>> estimate_confidence(150, 25)
        0.9
        >>> estimate_confidence(10, 2)
        0.6
    """
    if detection_count <= 0 or text_length <= 0:
        return 0.0

    for min_length, min_detections, confidence in _TIERS:
        if text_length > min_length and detection_count > min_detections:
            return confidence

    return _FLOOR
