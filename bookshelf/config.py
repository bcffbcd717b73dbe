import os


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in {"1", "true", "yes"}


HOST = os.environ.get("BOOKSHELF_HOST", "0.0.0.0")
PORT = int(os.environ.get("BOOKSHELF_PORT", "8080"))
LOG_LEVEL = os.environ.get("BOOKSHELF_LOG_LEVEL", "INFO")

# Graylog collector settings
GELF_TRANSPORT = os.environ.get("BOOKSHELF_GELF_TRANSPORT", "tcp")
GELF_HOST = os.environ.get("BOOKSHELF_GELF_HOST", "172.30.0.1")
GELF_PORT = int(os.environ.get("BOOKSHELF_GELF_PORT", "12201"))
GELF_SOURCE = os.environ.get("BOOKSHELF_GELF_SOURCE", "localhost")
GELF_LEVEL = int(os.environ.get("BOOKSHELF_GELF_LEVEL", "1"))
GELF_TIMEOUT = float(os.environ.get("BOOKSHELF_GELF_TIMEOUT", "5.0"))
GELF_REQUIRED = _flag("BOOKSHELF_GELF_REQUIRED", "false")

ACCESS_LOG_ENABLED = _flag("BOOKSHELF_ACCESS_LOG_ENABLED", "true")
ACCESS_LOG_QUEUE_SIZE = int(os.environ.get("BOOKSHELF_ACCESS_LOG_QUEUE_SIZE", "1000"))
ACCESS_LOG_DRAIN_TIMEOUT = float(os.environ.get("BOOKSHELF_ACCESS_LOG_DRAIN_TIMEOUT", "5.0"))
TRUST_PROXY_HEADERS = _flag("BOOKSHELF_TRUST_PROXY_HEADERS", "true")
