"""Summary tree nodes for recursive (Raptor-style) summarization.

A node is either a leaf wrapping one original message, or a summary
wrapping generated text plus the nodes it replaced. Trees are built bottom
up and never mutated, so every summary can be traced back to its sources.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Union

from ..types import ConversationMessage, SummaryType


@dataclass(frozen=True)
class LeafNode:
    message: ConversationMessage

    @property
    def content(self) -> str:
        return self.message.content


@dataclass(frozen=True)
class SummaryNode:
    content: str
    children: tuple[SummaryTreeNode, ...]


SummaryTreeNode = Union[LeafNode, SummaryNode]


def node_tokens(node: SummaryTreeNode, counter: Callable[[str], int]) -> int:
    return counter(node.content)


def flatten_node(node: SummaryTreeNode) -> ConversationMessage:
    """Leaf → its original message; summary → a topic summary message."""
    if isinstance(node, LeafNode):
        return node.message
    return ConversationMessage.summary(node.content, SummaryType.TOPIC)


def iter_leaves(node: SummaryTreeNode) -> Iterator[ConversationMessage]:
    """Yield the source messages under a node, in order."""
    if isinstance(node, LeafNode):
        yield node.message
        return
    for child in node.children:
        yield from iter_leaves(child)


def tree_depth(node: SummaryTreeNode) -> int:
    if isinstance(node, LeafNode):
        return 0
    return 1 + max((tree_depth(c) for c in node.children), default=0)
