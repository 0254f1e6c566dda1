import os
import asyncio
from prometheus_client import Counter, start_http_server
import logging
from redis import asyncio as aioredis

logger = logging.getLogger(__name__)

REDIS = None

UPLOAD_ATTEMPTS = Counter('flock_upload_attempts_total', 'Storage write attempts made by upload units', ['bucket'])
UPLOAD_OUTCOMES = Counter('flock_upload_units_total', 'Upload units by terminal state', ['bucket', 'outcome'])
COMPENSATIONS = Counter('flock_upload_compensations_total', 'Compensating deletes issued after failed registration', ['bucket', 'result'])

def init_metrics(port: int = None):
    """Initialize Prometheus metrics server"""
    port = port or int(os.getenv('METRICS_PORT', '8001'))
    try:
        start_http_server(port)
        logger.info(f"Prometheus metrics server started on port {port}")
    except Exception as e:
        logger.warning(f'Prometheus start failed: {e}')

async def redis_startup():
    """Connect to Redis; the cache stays disabled if every attempt fails"""
    global REDIS

    redis_url = os.getenv('REDIS_URL', 'redis://redis:6379/0')
    max_retries = 3
    retry_delay = 3  # seconds

    for attempt in range(max_retries):
        client = None
        try:
            logger.info(f"Attempting to connect to Redis: {redis_url} (attempt {attempt + 1}/{max_retries})")

            client = aioredis.from_url(
                redis_url,
                decode_responses=False,
                max_connections=20,
                retry_on_timeout=True,
                health_check_interval=30,
                socket_connect_timeout=5,
                socket_timeout=5
            )
            await client.ping()
            REDIS = client

            logger.info("Redis connected successfully")
            break

        except Exception as e:
            logger.warning(f'Redis startup attempt {attempt + 1} failed: {e}')
            if client is not None:
                try:
                    await client.aclose()
                except Exception as close_error:
                    logger.debug(f'Redis close failed: {close_error}')
            REDIS = None

            if attempt < max_retries - 1:
                logger.info(f"Retrying Redis connection in {retry_delay} seconds...")
                await asyncio.sleep(retry_delay)
            else:
                logger.error("Failed to connect to Redis after all retries")

async def shutdown_connections():
    """Gracefully shutdown all connections"""
    global REDIS
    logger.info("Shutting down connections...")

    if REDIS:
        try:
            await REDIS.aclose()
            logger.info("Redis connection closed")
        except Exception as e:
            logger.error(f"Error closing Redis connection: {e}")
        REDIS = None
