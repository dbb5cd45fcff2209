import contextvars

# Global context var for Trace ID
trace_id_var = contextvars.ContextVar("trace_id", default="-")

# Request scoped vars
ip_address_var = contextvars.ContextVar("ip_address", default="unknown")
