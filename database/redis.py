import redis.asyncio as redis

from config.settings import settings

# Asynchronous Redis connection pool backing the durable token store.
# decode_responses=True makes every value come back as str instead of bytes.
redis_pool = redis.ConnectionPool(
    host=settings.REDIS_HOST,
    port=settings.REDIS_PORT,
    db=settings.REDIS_DB,
    decode_responses=True
)

# Shared client handed to the token store by the composition root.
redis_client = redis.Redis(connection_pool=redis_pool)
