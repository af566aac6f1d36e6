"""Infrastructure layer - upstream service relay"""

from .upstream_relay import SUCCESS_SENTINEL, UpstreamRelay

__all__ = ["SUCCESS_SENTINEL", "UpstreamRelay"]
