"""Collaborator protocols and in-memory reference collaborators."""

from chunkwise.plugins.memory import FunctionTransform, ListReader, ListSink, ListSource, identity_transform
from chunkwise.plugins.protocols import SinkProtocol, SourceProvider, SourceReader, TransformProtocol
from chunkwise.plugins.sentinels import DROP, DropSentinel

__all__ = [
    "DROP",
    "DropSentinel",
    "FunctionTransform",
    "ListReader",
    "ListSink",
    "ListSource",
    "SinkProtocol",
    "SourceProvider",
    "SourceReader",
    "TransformProtocol",
    "identity_transform",
]
