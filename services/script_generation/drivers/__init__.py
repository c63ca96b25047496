"""Script generation driver implementations"""

from shared.utils import config

from .base import ScriptDriver
from .openai_driver import OpenAIScriptDriver
from .template import TemplateScriptDriver

SCRIPT_DRIVERS: dict[str, type[ScriptDriver]] = {
    OpenAIScriptDriver.name: OpenAIScriptDriver,
    TemplateScriptDriver.name: TemplateScriptDriver,
}


def create_script_driver(name: str | None = None) -> ScriptDriver:
    driver_name = name or config.get("script_driver", "openai")
    driver_cls = SCRIPT_DRIVERS.get(driver_name)
    if driver_cls is None:
        raise ValueError(f"Script driver '{driver_name}' is not configured")
    return driver_cls()


__all__ = ["SCRIPT_DRIVERS", "OpenAIScriptDriver", "ScriptDriver", "TemplateScriptDriver", "create_script_driver"]
