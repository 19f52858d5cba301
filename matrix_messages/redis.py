"""
Progress Publisher uses Redis for Layout Job Updates
Publishes job status changes and operation results
"""

import json
import os
import logging
from typing import Optional, Dict, Any

import redis

logger = logging.getLogger(__name__)


class ProgressPublisher:
    """Publishes layout job progress updates to Redis"""

    def __init__(self, redis_url: Optional[str] = None):
        """
        Initialize Redis publisher

        Args:
            redis_url: Redis connection URL (defaults to env var REDIS_URL)
        """
        self.redis_url = redis_url or os.getenv('REDIS_URL')
        self.redis_client = None

        try:
            self.connect()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to connect to Redis: %s", e)
            # Don't fail if Redis is unavailable - progress updates are optional

    def connect(self):
        """Establish Redis connection"""
        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5
            )
            self.redis_client.ping()
            logger.info("Connected to Redis at %s", self.redis_url)
        except Exception as e:
            logger.error("Redis connection failed: %s", e)
            self.redis_client = None
            raise

    @staticmethod
    def channel_for(job_id: str) -> str:
        return f"layout:{job_id}"

    def start_job(self, job_id: str):
        """Publish that the job has started."""
        self.publish_status(job_id, "processing", {"details": "Layout operation has started."})

    def publish_status(self, job_id: str, status: str, message_data: Dict):
        """
        Publish status change to Redis

        Args:
            job_id: Unique job identifier
            status: Status (processing, completed, failed)
            message_data: Data associated with the status
        """
        if not self.redis_client:
            return

        try:
            payload = {
                "status": status,
                "message": message_data
            }

            self.redis_client.publish(self.channel_for(job_id), json.dumps(payload))

        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Failed to publish status: %s", e)

    def complete_job(self, job_id: str, output_path: str, result: Dict[str, Any]):
        """Mark job as completed with the operation result"""
        self.publish_status(job_id, "completed", {
            "outputFile": output_path,
            "result": result,
        })

    def fail_job(self, job_id: str, error_message: str, code: Optional[str] = None,
                 details: Any = None):
        """Mark job as failed with error information"""
        error_data = {
            "code": code or "LAYOUT_FAILED",
            "message": error_message,
            "details": details
        }

        self.publish_status(job_id, "failed", error_data)

    def close(self):
        """Close Redis connection"""
        if self.redis_client:
            try:
                self.redis_client.close()
                logger.info("Redis connection closed")
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Error closing Redis connection: %s", e)
