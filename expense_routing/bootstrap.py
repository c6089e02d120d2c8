"""
Process start-up: settings, logging and database in one call.

    settings = bootstrap()
    coordinator = DecisionCoordinator(get_session_factory(), settings=settings)
"""

from __future__ import annotations

from pathlib import Path

from expense_routing.config import RoutingSettings, load_settings
from expense_routing.db.engine import create_tables, init_engine_from_settings
from expense_routing.logging_config import configure_logging


def bootstrap(
    config_path: Path | str | None = None,
    create_schema: bool = False,
) -> RoutingSettings:
    """Load settings, configure logging and initialise the engine.

    ``create_schema`` creates missing tables.  The immutability listeners
    are registered either way.
    """
    settings = load_settings(config_path)
    configure_logging(level=settings.log_level)
    init_engine_from_settings(settings)
    if create_schema:
        create_tables()
    else:
        from expense_routing.db.immutability import register_immutability_listeners

        register_immutability_listeners()
    return settings
