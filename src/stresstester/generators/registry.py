"""Dispatch table mapping rewrite modes to generator implementations."""

from __future__ import annotations

from typing import Dict

from ..model import RewriteMode
from .base import ActionGenerator
from .concurrent import ConcurrentRewriteActionGenerator
from .requests import RequestActionGenerator
from .rewrite import InsideOutRewriteActionGenerator, RewriteActionGenerator

__all__ = ["generator_for"]

_REGISTRY: Dict[RewriteMode, type] = {
    RewriteMode.NONE: RequestActionGenerator,
    RewriteMode.BASIC: RewriteActionGenerator,
    RewriteMode.INSIDE_OUT: InsideOutRewriteActionGenerator,
    RewriteMode.CONCURRENT: ConcurrentRewriteActionGenerator,
}


def generator_for(mode: RewriteMode | str) -> ActionGenerator:
    """Return the generator implementing ``mode``."""
    if not isinstance(mode, RewriteMode):
        try:
            mode = RewriteMode(mode)
        except ValueError as error:
            valid = ", ".join(item.value for item in RewriteMode)
            raise KeyError(f"Unknown rewrite mode '{mode}'. Expected one of: {valid}") from error
    return _REGISTRY[mode]()
