"""Base worker class for NATS-facing services."""

import asyncio
from typing import Any, Callable, Dict, Optional
from abc import ABC, abstractmethod

import nats
import structlog

logger = structlog.get_logger(__name__)


class BaseWorker(ABC):
    """Base class for workers that answer requests over NATS."""

    def __init__(self, nats_url: str = "nats://localhost:4222"):
        self.nats_url = nats_url
        self.nats_client: Optional[nats.NATS] = None
        self.running = False
        self.subscriptions = []

    async def connect(self):
        """Connect to NATS."""
        try:
            self.nats_client = await nats.connect(
                servers=[self.nats_url],
                reconnect_time_wait=3,
                max_reconnect_attempts=5
            )
            logger.info("Connected to NATS", url=self.nats_url)

        except Exception as e:
            logger.error("Failed to connect to NATS", error=str(e))
            raise

    async def disconnect(self):
        """Disconnect from NATS."""
        try:
            if self.nats_client:
                await self.nats_client.close()
                logger.info("Disconnected from NATS")
        except Exception as e:
            logger.error("Error disconnecting from NATS", error=str(e))

    async def subscribe(self, subject: str, handler: Callable):
        """Subscribe to a NATS subject."""
        try:
            subscription = await self.nats_client.subscribe(subject, cb=handler)
            self.subscriptions.append(subscription)
            logger.info("Subscribed to subject", subject=subject)
        except Exception as e:
            logger.error("Failed to subscribe", subject=subject, error=str(e))
            raise

    async def start(self):
        """Start the worker."""
        try:
            await self.connect()
            self.running = True
            logger.info("Worker started")
        except Exception as e:
            logger.error("Failed to start worker", error=str(e))
            raise

    async def stop(self):
        """Stop the worker."""
        try:
            self.running = False

            for subscription in self.subscriptions:
                await subscription.unsubscribe()
            self.subscriptions = []

            await self.disconnect()
            logger.info("Worker stopped")
        except Exception as e:
            logger.error("Error stopping worker", error=str(e))

    @abstractmethod
    async def process_message(self, subject: str, payload: Dict[str, Any]) -> Any:
        """Process a decoded request. Must be implemented by subclasses."""
        pass

    async def run(self):
        """Run the worker until stopped or interrupted."""
        try:
            await self.start()

            while self.running:
                await asyncio.sleep(1)

        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
        except Exception as e:
            logger.error("Worker error", error=str(e))
        finally:
            await self.stop()
