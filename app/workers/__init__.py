"""
Dramatiq worker infrastructure for async task processing.

This module sets up the broker for Dramatiq workers and provides shared
configuration for all worker modules.
"""
import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.brokers.stub import StubBroker

from app.config import settings

# Configure broker for Dramatiq (stub broker keeps tests and local runs in-process)
if settings.use_stub_broker:
    broker = StubBroker()
else:
    broker = RedisBroker(url=settings.redis_url)
dramatiq.set_broker(broker)
