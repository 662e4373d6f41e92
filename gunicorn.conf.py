"""
Production Server Configuration

Run FastAPI with Uvicorn workers under Gunicorn for production deployment.
"""

import multiprocessing
import os

# Server socket
bind = os.getenv("BIND", "0.0.0.0:3000")
backlog = 2048

# Worker processes
# The warehouse run lock is per process; the PostgreSQL advisory lock
# serializes runs across workers.
workers = int(os.getenv("WORKERS", multiprocessing.cpu_count() * 2 + 1))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
timeout = 120
keepalive = 5
graceful_timeout = 30

# Process naming
proc_name = "polyglot-shelf-api"

# Server mechanics
daemon = False
pidfile = "/tmp/polyglot-shelf.pid"

# Logging
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
accesslog = "-"
access_log_format = '%(h)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s" %(D)s'


def post_fork(server, worker):
    """Called after a worker has been forked."""
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def worker_abort(worker):
    """Called when worker receives SIGABRT signal."""
    worker.log.warning("Worker aborted (pid: %s), likely a request timeout", worker.pid)
