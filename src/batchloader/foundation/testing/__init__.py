"""Testing utilities: recording resolvers with configurable failures and omissions."""

from .resolvers import Invocation, RecordingMultiResolver, RecordingResolver

__all__ = ["Invocation", "RecordingResolver", "RecordingMultiResolver"]
