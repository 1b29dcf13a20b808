from config import Config, _env_bool, _env_int


_cfg = Config()

wsgi_app = "app:create_app()"
bind = f"{_cfg.HOST}:{_cfg.PORT}"

# gthread: request handlers block on the DB, not the CPU.
worker_class = "gthread"
workers = max(1, _env_int("WEB_CONCURRENCY", 2))
threads = max(1, _env_int("PYTHON_THREADS", 4))

# Engine pool and notification hub are per worker process.
preload_app = _env_bool("GUNICORN_PRELOAD_APP", False)

timeout = max(10, _env_int("GUNICORN_TIMEOUT", 60))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 30))

accesslog = "-"
errorlog = "-"
loglevel = _cfg.LOG_LEVEL.lower()

max_requests = max(0, _env_int("GUNICORN_MAX_REQUESTS", 1000))
max_requests_jitter = max(0, _env_int("GUNICORN_MAX_REQUESTS_JITTER", 50))
