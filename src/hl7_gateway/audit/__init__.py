from .repository import InMemoryTransmissionRepository, TransmissionRepository

__all__ = ["InMemoryTransmissionRepository", "TransmissionRepository"]
