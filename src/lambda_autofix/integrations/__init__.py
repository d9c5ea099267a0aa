"""
Signal source and control plane integrations for lambda-autofix.

The AWS adapters import boto3 when constructed; install the ``aws`` extra
to use them.
"""

from .base import ControlPlane, GuidanceSource, SignalSource
from .memory import InMemoryControlPlane, InMemorySignalSource
from .aws import CloudWatchSignalSource, CodeBuilder, LambdaControlPlane

__all__ = [
    "ControlPlane",
    "GuidanceSource",
    "SignalSource",
    "InMemoryControlPlane",
    "InMemorySignalSource",
    "CloudWatchSignalSource",
    "CodeBuilder",
    "LambdaControlPlane",
]
