from .bootstrap import create_app
from .service import GatewayService
from .settings import GatewaySettings

__all__ = ["GatewayService", "GatewaySettings", "create_app"]
