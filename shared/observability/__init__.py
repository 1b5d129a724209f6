from .setup import setup_observability, configure_logging
from .metrics import (
    dual_write_mirror_total,
    dual_write_mirror_failures_total,
    upstream_request_failures_total,
)
