from .core import Swarm, debug_log
from .builder import SwarmBuilder
from .validation import (
    collect_request_violations,
    validate_request,
    validate_url,
    validate_api_key,
    validate_config,
)

__all__ = ["Swarm",
           "SwarmBuilder",
           "debug_log",
           "collect_request_violations",
           "validate_request",
           "validate_url",
           "validate_api_key",
           "validate_config"]
