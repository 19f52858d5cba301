#!/usr/bin/env python3
# pylint: disable=too-many-instance-attributes
"""
RabbitMQ Consumer for Matrix Layout Jobs
Listens to layout_queue and applies matrix operations to presentations
"""

import json
import os
import time
import logging
import traceback
from pathlib import Path

import pika
from pika.exceptions import AMQPConnectionError

from matrix_core.errors import MatrixError
from matrix_core.processor import PresentationProcessor
from .redis import ProgressPublisher


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class LayoutJobConsumer:
    """Handles RabbitMQ message consumption and matrix layout jobs"""

    def __init__(self, processor: PresentationProcessor = None,
                 progress_publisher: ProgressPublisher = None):
        self.connection = None
        self.channel = None
        self.queue_name = os.getenv('LAYOUT_QUEUE', 'layout_queue')

        self.rabbitmq_url = os.getenv('RABBITMQ_URL')

        if not self.rabbitmq_url:
            raise ValueError("RABBITMQ_URL environment variable is not set")

        self.shared_dir = Path(os.getenv('SHARED_DIR', '/app/shared'))

        self.shared_dir.mkdir(parents=True, exist_ok=True)

        self.progress_publisher = progress_publisher or ProgressPublisher()

        self.processor = processor or PresentationProcessor()

        logger.info("Consumer initialized with queue: %s", self.queue_name)
        logger.info("Shared directory: %s", self.shared_dir)

    def connect(self):
        """Establish connection to RabbitMQ"""
        try:
            logger.info("Connecting to RabbitMQ: %s", self.rabbitmq_url)

            parameters = pika.URLParameters(self.rabbitmq_url)
            parameters.heartbeat = 600
            parameters.blocked_connection_timeout = 300

            self.connection = pika.BlockingConnection(parameters)
            self.channel = self.connection.channel()

            self.channel.queue_declare(queue=self.queue_name, durable=True)

            # Set QoS - process one message at a time
            self.channel.basic_qos(prefetch_count=1)

            logger.info("Successfully connected to RabbitMQ")
            return True

        except AMQPConnectionError as e:
            logger.error("Failed to connect to RabbitMQ: %s", e)
            return False
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Unexpected error during connection: %s", e)
            return False

    def process_message(self, ch, method, properties, body):  # pylint: disable=unused-argument
        """
        Process a layout job message

        Expected message format:
        {
            "id": "unique-job-id",
            "inputFile": "deck.pptx",        # relative to the shared dir
            "outputFile": "deck-out.pptx",   # relative to the shared dir
            "operation": "elementsToTable",
            "params": {},                    # optional
            "slideIndex": 1,                 # optional, 1-based
            "shapeIds": [2, 3, 4]            # optional, defaults to every shape
        }
        """
        job_id = 'unknown'
        try:
            message = json.loads(body)
            job_id = message.get('id', 'unknown')
            logger.info("Processing job %s", job_id)

            if self.progress_publisher and job_id:
                self.progress_publisher.start_job(job_id)

            input_filename = message.get('inputFile', '')
            output_filename = message.get('outputFile', '')
            operation = message.get('operation', '')
            params = message.get('params') or {}
            slide_index = int(message.get('slideIndex', 1))
            shape_ids = message.get('shapeIds')

            if not input_filename or not output_filename or not operation:
                raise ValueError("Missing required fields: inputFile, outputFile or operation")

            input_path = self.shared_dir / input_filename
            output_path = self.shared_dir / output_filename

            if not input_path.exists():
                raise FileNotFoundError(f"Input file not found: {input_path}")

            logger.info("Running %s on %s (slide %d)", operation, input_path, slide_index)

            result = self.processor.process(
                input_path,
                output_path,
                operation,
                params=params,
                slide_index=slide_index,
                shape_ids=shape_ids
            )

            if result.success:
                self.progress_publisher.complete_job(job_id, str(output_filename), result.to_dict())
                logger.info("Successfully processed job %s: %s", job_id, result.message)
            else:
                self.progress_publisher.fail_job(
                    job_id, result.message, code=result.error_code, details=result.to_dict())
                logger.warning("Job %s failed: %s", job_id, result.message)

            ch.basic_ack(delivery_tag=method.delivery_tag)

        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in message: %s", e)
            self.progress_publisher.fail_job(job_id, "Invalid message format", details=str(e))
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)

        except FileNotFoundError as e:
            logger.error("File not found: %s", e)
            self.progress_publisher.fail_job(job_id, "Input file not found", details=str(e))
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)

        except (ValueError, TypeError) as e:
            logger.error("Invalid job %s: %s", job_id, e)
            self.progress_publisher.fail_job(job_id, "Invalid job", details=str(e))
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=False)

        except MatrixError as e:
            logger.warning("Job %s failed: %s", job_id, e.message)
            self.progress_publisher.fail_job(job_id, e.message, code=e.code)
            ch.basic_ack(delivery_tag=method.delivery_tag)

        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error processing job: %s", e)
            logger.error(traceback.format_exc())

            self.progress_publisher.fail_job(
                job_id,
                "The operation could not be completed.",
                details=str(e)
            )

            # Reject with requeue - might be a temporary issue
            ch.basic_nack(delivery_tag=method.delivery_tag, requeue=True)

    def start_consuming(self):
        """Start consuming messages from the queue"""
        try:
            self.channel.basic_consume(
                queue=self.queue_name,
                on_message_callback=self.process_message,
                auto_ack=False
            )

            logger.info("Starting to consume from %s", self.queue_name)
            logger.info("Waiting for messages. To exit press CTRL+C")

            self.channel.start_consuming()

        except KeyboardInterrupt:
            logger.info("Interrupted by user")
            self.stop_consuming()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error("Error during consumption: %s", e)
            self.stop_consuming()

    def stop_consuming(self):
        """Gracefully stop consuming and close connections"""
        logger.info("Stopping consumer...")

        if self.progress_publisher:
            self.progress_publisher.close()

        if self.channel and not self.channel.is_closed:
            try:
                self.channel.stop_consuming()
                self.channel.close()
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Error closing channel: %s", e)

        if self.connection and not self.connection.is_closed:
            try:
                self.connection.close()
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Error closing connection: %s", e)

        logger.info("Consumer stopped")

    def run(self):
        """Main run loop with automatic reconnection"""
        while True:
            try:
                if self.connect():
                    self.start_consuming()
                else:
                    logger.error("Failed to connect, retrying in 5 seconds...")
                    time.sleep(5)
            except Exception as e:  # pylint: disable=broad-exception-caught
                logger.error("Unexpected error in run loop: %s", e)
                logger.error(traceback.format_exc())
                time.sleep(5)
