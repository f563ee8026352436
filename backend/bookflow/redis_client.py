from redis import Redis

from .config import settings

# from_url is lazy: no connection is opened until the first command
redis_client = Redis.from_url(
    settings.redis_url,
    socket_timeout=settings.redis_socket_timeout,
    socket_connect_timeout=settings.redis_socket_timeout,
    decode_responses=True,
)
