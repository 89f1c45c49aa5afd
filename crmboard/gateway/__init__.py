"""Remote Data Gateway backends.

Usage:
    from crmboard.gateway import Query, build_gateway
    gw = build_gateway()
"""

from .base import Gateway, Query  # noqa: F401
from .rest import RestGateway  # noqa: F401
from .sql import SqlGateway  # noqa: F401


def build_gateway(settings=None) -> Gateway:
    """Construct the configured backend (`rest` or `sql`)."""
    if settings is None:
        from ..config import settings
    if settings.gateway_backend == "sql":
        from ..database import make_engine, make_session_factory

        engine = make_engine(settings.database_url)
        return SqlGateway(make_session_factory(engine), public_base_url=settings.app_url)
    return RestGateway(settings.baas_url, settings.baas_anon_key)
