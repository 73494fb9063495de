"""
Gunicorn configuration for the authorization service.

Each worker builds its own application (``preload_app`` off) so every worker
opens its own MongoDB client after the fork.
"""

import multiprocessing
import os

bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
backlog = 2048

workers = int(os.getenv("GUNICORN_WORKERS", max(2, min(8, (2 * multiprocessing.cpu_count()) + 1))))
worker_class = "sync"
max_requests = 1000
max_requests_jitter = 500

timeout = 30
keepalive = 5
graceful_timeout = 30

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("GUNICORN_LOG_LEVEL", "info")
access_log_format = '%(h)s "%(r)s" %(s)s %(b)s %(D)s %({x-correlation-id}o)s'

preload_app = False
proc_name = "edu-rbac"

limit_request_line = 8192
limit_request_fields = 100
limit_request_field_size = 8192


def post_fork(server, worker):
    server.log.info("Worker spawned (pid: %s)", worker.pid)


def worker_abort(worker):
    worker.log.warning("Worker aborted (pid: %s)", worker.pid)
