from __future__ import annotations

import contextvars

# Correlation id of the HTTP request driving the current screen action, blank outside one
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="")
