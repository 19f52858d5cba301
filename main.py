#!/usr/bin/env python3
"""
Main entry point for the matrix layout service.

This script initializes and runs the RabbitMQ layout job consumer.
"""

import sys
import traceback
import logging

from matrix_messages import LayoutJobConsumer

logger = logging.getLogger(__name__)

def main():
    """Main entry point"""
    consumer = LayoutJobConsumer()

    try:
        consumer.run()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    except Exception as e:  # pylint: disable=broad-exception-caught
        logger.error("Fatal error: %s", e)
        logger.error(traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
