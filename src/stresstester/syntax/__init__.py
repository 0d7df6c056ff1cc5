"""Structured syntax trees and their wire formats."""

from .serialization import (
    SyntaxTreeDeserializer,
    SyntaxTreeFormat,
    SyntaxTreeFormatError,
    serialize_tree,
)
from .tree import Node, NodeSpan, SyntaxElement, SyntaxTree, Token
from .visitors import CountingVisitor, LocationComputingVisitor

__all__ = [
    "CountingVisitor",
    "LocationComputingVisitor",
    "Node",
    "NodeSpan",
    "SyntaxElement",
    "SyntaxTree",
    "SyntaxTreeDeserializer",
    "SyntaxTreeFormat",
    "SyntaxTreeFormatError",
    "Token",
    "serialize_tree",
]
