"""Aggregates transcription outcomes published on the side channel."""

import logging
import threading
from typing import Any, Dict, List

from pubsub import pub

from .publisher import OUTCOME_TOPIC
from ..models.transcription import ChunkOutcome

logger = logging.getLogger(__name__)


class OutcomeAggregator:
    """Subscribes to an outcome topic and keeps running counts."""

    def __init__(self, topic: str = OUTCOME_TOPIC):
        self.topic = topic
        self.outcomes: List[ChunkOutcome] = []
        self.lock = threading.Lock()
        pub.subscribe(self._on_outcome, topic)
        logger.debug(f"OutcomeAggregator subscribed to {topic}")

    def _on_outcome(self, outcome: ChunkOutcome) -> None:
        with self.lock:
            self.outcomes.append(outcome)
        if not outcome.ok:
            logger.warning(f"{outcome.mode.value} #{outcome.sequence} of session "
                           f"{outcome.session_id} failed: {outcome.error}")

    def get_summary(self) -> Dict[str, Any]:
        """Counts of successful, failed and discarded outcomes."""
        with self.lock:
            outcomes = list(self.outcomes)
        return {
            "total": len(outcomes),
            "succeeded": sum(1 for o in outcomes if o.ok and not o.discarded),
            "failed": sum(1 for o in outcomes if not o.ok),
            "discarded": sum(1 for o in outcomes if o.discarded),
            "errors": [o.error for o in outcomes if o.error],
        }

    def shutdown(self) -> None:
        """Stop listening for outcomes."""
        try:
            pub.unsubscribe(self._on_outcome, self.topic)
        except Exception as e:
            logger.warning(f"Error during unsubscribe: {e}")
