"""
Host metrics pipeline: Sampler -> RetentionStore -> BroadcastHub,
driven once per second by CollectionLoop.
"""

from .broadcast import BroadcastHub
from .collector import CollectionLoop
from .models import Sample
from .retention import RetentionStore
from .sampler import Sampler

__all__ = ["BroadcastHub", "CollectionLoop", "RetentionStore", "Sample", "Sampler"]
