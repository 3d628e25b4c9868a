import multiprocessing
import os

bind = os.getenv('LAB_BIND', '127.0.0.1:8000')
workers = int(os.getenv('LAB_WORKERS', (multiprocessing.cpu_count() * 2) + 1))
worker_class = "uvicorn.workers.UvicornWorker"
timeout = 60
graceful_timeout = 30
keepalive = 5
loglevel = os.getenv('LAB_LOG_LEVEL', 'info')
accesslog = "-"
errorlog = "-"
