"""Shared DTOs and type definitions used across components.

Only lightweight, common data models should live here. Do not place
negotiation logic or transport dependencies (aiortc, websockets) in this
package.
"""

from .dto import NetworkQuality, QualitySample, RemoteMediaState

__all__ = [
    "NetworkQuality",
    "QualitySample",
    "RemoteMediaState",
]
