"""Outcome publisher for the pub/sub observability side channel."""

import logging
from pubsub import pub

from ..models.transcription import ChunkOutcome

logger = logging.getLogger(__name__)

OUTCOME_TOPIC = "transcription.outcome"


class OutcomePublisher:
    """Publishes chunk/window outcomes using pubsub.pub."""

    def __init__(self, topic: str = OUTCOME_TOPIC):
        self.topic = topic

    def publish(self, outcome: ChunkOutcome) -> None:
        """Publish an outcome; subscriber failures are logged, never raised."""
        try:
            pub.sendMessage(self.topic, outcome=outcome)
        except Exception as e:
            logger.error(f"Outcome subscriber failed on {self.topic}: {e}", exc_info=True)
