"""Strategies that turn a syntax tree into probe and edit actions."""

from .base import ActionGenerator
from .concurrent import ConcurrentRewriteActionGenerator
from .registry import generator_for
from .requests import RequestActionGenerator
from .rewrite import InsideOutRewriteActionGenerator, RewriteActionGenerator

__all__ = [
    "ActionGenerator",
    "ConcurrentRewriteActionGenerator",
    "InsideOutRewriteActionGenerator",
    "RequestActionGenerator",
    "RewriteActionGenerator",
    "generator_for",
]
