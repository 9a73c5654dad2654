import os

# Gunicorn config variables
bind = os.getenv("BIND", "127.0.0.1:3000")
# Rooms, sessions and expiry timers live in process memory.
# A second worker would see a different set of rooms, so keep exactly one.
workers = 1
worker_class = "uvicorn.workers.UvicornWorker"
# Chat sockets stay open for the room lifetime (40 min)
timeout = 120
graceful_timeout = 30
keepalive = 5
accesslog = os.getenv("ACCESS_LOG", "-")
errorlog = os.getenv("ERROR_LOG", "-")
loglevel = os.getenv("LOG_LEVEL", "info")
daemon = False
