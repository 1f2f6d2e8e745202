# Import all handlers so they register themselves.
from . import daily_summary  # noqa: F401
from . import client_summary  # noqa: F401
