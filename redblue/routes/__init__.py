from .game import game_router
from .admin import admin_router
from .ws import ws_router
