from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence, Union


logger = logging.getLogger(__name__)

BALL_KEYWORDS = ("soccer", "sports ball")
BALL_EXACT = ("ball",)


def load_labels(labels_path: Union[str, Path]) -> List[str]:
    """
    Load a plain-text label list, one class name per line.

    Lines are stripped and blank lines skipped, so the list index is the
    model's class index for the usual `labels.txt` exports.
    """

    path = Path(labels_path)
    if not path.exists():
        raise FileNotFoundError(f"Label file not found: {path}")

    labels: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for raw in f:
            line = raw.strip()
            if line:
                labels.append(line)
    return labels


def find_target_class(
    labels: Sequence[str],
    keywords: Sequence[str] = BALL_KEYWORDS,
    exact: Sequence[str] = BALL_EXACT,
) -> Optional[int]:
    """
    Index of the first label (case-insensitive) containing one of `keywords`
    or equal to one of `exact`. None if nothing matches.
    """

    keywords = [k.lower() for k in keywords]
    exact = [e.lower() for e in exact]
    for i, raw in enumerate(labels):
        label = raw.lower()
        if any(k in label for k in keywords) or label in exact:
            logger.debug("Ball class found: %r at index %d", raw, i)
            return i
    logger.warning("No ball class found in %d labels", len(labels))
    return None
