from .health import health_bp
from .dashboard import dashboard_bp
from .public import public_bp
