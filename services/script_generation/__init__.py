"""Script generation capability: drivers, prompt templates and content validation."""

from .drivers import SCRIPT_DRIVERS, OpenAIScriptDriver, ScriptDriver, TemplateScriptDriver, create_script_driver
from .validation import validate_script

__all__ = [
    "SCRIPT_DRIVERS",
    "OpenAIScriptDriver",
    "ScriptDriver",
    "TemplateScriptDriver",
    "create_script_driver",
    "validate_script",
]
