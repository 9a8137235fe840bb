"""Output-mode selection per provider and model."""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


class Mode(Enum):
    """How the provider is asked for structured output."""

    TOOLS = "tools"  # native tool / function calling
    JSON = "json"  # JSON object instructions
    MD_JSON = "md_json"  # JSON inside a markdown code block
    JSON_SCHEMA = "json_schema"  # provider-enforced JSON schema


# Substrings marking models with native tool use
NATIVE_MODEL_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "anthropic": ("claude-3", "claude-4", "sonnet", "haiku", "opus"),
    "openai": ("gpt-4", "gpt-3.5-turbo", "o1", "o3"),
}

NATIVE_MODEL_EXCLUSIONS: Dict[str, Tuple[str, ...]] = {
    "openai": ("o1-mini", "o1-preview"),
}

# Mode used when the model lacks native support
CONSERVATIVE_MODES: Dict[str, Mode] = {
    "anthropic": Mode.JSON,
    "openai": Mode.MD_JSON,
}


@dataclass(frozen=True)
class ModeSelection:
    """Chosen mode with its fallback and an explanation."""

    mode: Mode
    is_native: bool
    fallback_mode: Mode
    reason: str


def supports_native_structured_output(provider: str, model: Optional[str]) -> bool:
    """Check whether a model supports native structured output (tool use)."""
    if not model:
        return False
    name = model.lower()
    if any(excluded in name for excluded in NATIVE_MODEL_EXCLUSIONS.get(provider, ())):
        return False
    return any(pattern in name for pattern in NATIVE_MODEL_PATTERNS.get(provider, ()))


def get_optimal_mode(provider: str, model: Optional[str] = None) -> Mode:
    """Best mode for a provider and model."""
    if supports_native_structured_output(provider, model):
        return Mode.TOOLS
    return CONSERVATIVE_MODES.get(provider, Mode.MD_JSON)


def select_mode(provider: str, model: Optional[str] = None) -> ModeSelection:
    """
    Select the primary mode and the mode to fall back to.

    Native tool use falls back to plain JSON instructions; every other mode
    falls back to JSON in a markdown block, the most widely understood form.
    """
    mode = get_optimal_mode(provider, model)
    is_native = mode == Mode.TOOLS

    if is_native:
        fallback_mode = Mode.JSON
        reason = f"Using native TOOLS mode for {provider} {model or 'default'} with JSON fallback"
    else:
        fallback_mode = Mode.MD_JSON
        reason = f"Using {mode.name} mode for {provider} {model or 'default'} with MD_JSON fallback"

    return ModeSelection(mode=mode, is_native=is_native, fallback_mode=fallback_mode, reason=reason)
