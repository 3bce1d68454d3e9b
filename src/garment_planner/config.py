# src/garment_planner/config.py
from __future__ import annotations

import logging
import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger("garment_planner.config").warning(
            "%s=%r is not an integer, using %s", name, raw, default
        )
        return default


# ---- Planning constants ------------------------------------------------------
# Minutes of one standard sewing shift (ramp-up base output = minutes / SMV * MO)
SHIFT_MINUTES = _env_int("PLANNER_SHIFT_MINUTES", 540)
# Calendar days the calculator may walk before giving up
MAX_PLAN_DAYS = _env_int("PLANNER_MAX_PLAN_DAYS", 366)
# Width of the visible scheduling board
WINDOW_DAYS = _env_int("PLANNER_WINDOW_DAYS", 30)

# ---- Storage -----------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./garment_planner.db")

# ---- Logging -----------------------------------------------------------------
# Controlled by env var PLANNER_LOG:
#   off | info | debug
_log_mode = os.getenv("PLANNER_LOG", "off").strip().lower()


def configure_logging(mode: str | None = None) -> None:
    """Attach a console handler to the ``garment_planner`` logger tree."""
    mode = (mode or _log_mode).strip().lower()
    if mode == "off":
        return
    level = logging.DEBUG if mode == "debug" else logging.INFO
    root = logging.getLogger("garment_planner")
    root.setLevel(level)
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(handler)
