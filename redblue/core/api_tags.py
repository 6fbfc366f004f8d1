from enum import Enum


class APITags(str, Enum):
    GAMES = "Games"
    ADMIN = "Admin"
    REALTIME = "Realtime"
    SYSTEM = "System"
