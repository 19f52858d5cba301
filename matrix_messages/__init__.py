"""
Message queue and progress communication module.

This module provides RabbitMQ consumer functionality and Redis progress publishing
for the matrix layout service.
"""

from .redis import ProgressPublisher
from .rabbitmq import LayoutJobConsumer

__all__ = [
    'ProgressPublisher',
    'LayoutJobConsumer',
]
