"""observability/ — structured logging for prodspace."""

from prodspace.observability.logger import (
    bind_drag,
    bind_view,
    clear_drag,
    clear_view,
    get_logger,
    render_domain_values,
    setup_logging,
)

__all__ = [
    "bind_drag",
    "bind_view",
    "clear_drag",
    "clear_view",
    "get_logger",
    "render_domain_values",
    "setup_logging",
]
