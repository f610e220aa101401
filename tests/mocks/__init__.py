"""
Mock Factories Package

Test doubles for delivery channels.
"""
from tests.mocks.channel_mocks import (
    RecordingChannel,
    create_recording_channels,
)

__all__ = [
    "RecordingChannel",
    "create_recording_channels",
]
