from .redis_service import (
    RedisService,
    get_redis,
    get_redis_or_none,
    startup_redis,
    shutdown_redis,
)
from .mysql_connection_manager import (
    MySQLConnectionManager,
    get_mysql_or_none,
    startup_mysql,
    shutdown_mysql,
)
from .query_manager import QueryManager
