# collage/domain/progress.py
import logging
from typing import Optional

from collage.domain.models import ProgressCallback, ProgressEvent

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Fire-and-forget progress sink; a failing callback never stops the pipeline."""

    def __init__(self, callback: Optional[ProgressCallback] = None, run_id: str = ""):
        self.callback = callback
        self.run_id = run_id
        self.stage: Optional[str] = None
        self.percent = 0.0

    def __call__(self, stage: str, percent: float, message: Optional[str] = None) -> None:
        self.stage = stage
        self.percent = max(0.0, min(1.0, percent))
        logger.info(f"[{self.run_id}] stage={stage} {percent:.0%} {message or ''}".rstrip())
        if self.callback is None:
            return
        try:
            self.callback(ProgressEvent(stage=stage, percent=self.percent, message=message))
        except Exception as e:
            logger.debug(f"[{self.run_id}] progress callback failed at {stage}: {e}")
