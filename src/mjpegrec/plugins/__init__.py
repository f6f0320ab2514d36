"""Plugin discovery."""

import importlib
import logging
import pkgutil

logger = logging.getLogger(__name__)


def discover_storage_plugins() -> None:
    """Import every built-in storage module so its decorator registers it."""
    package = importlib.import_module("mjpegrec.plugins.storage")
    for _, module_name, _ in pkgutil.iter_modules(package.__path__):
        if module_name.startswith("_"):
            continue
        try:
            importlib.import_module(f"mjpegrec.plugins.storage.{module_name}")
        except Exception as exc:
            logger.error(
                "Failed to import built-in storage plugin %s: %s",
                module_name,
                exc,
                exc_info=True,
            )


__all__ = ["discover_storage_plugins"]
