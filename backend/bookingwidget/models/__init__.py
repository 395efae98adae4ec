from .tables import Activities, Base, Bookings, CapacityVersions, Venues, metadata

__all__ = [
    "Base",
    "metadata",
    "Venues",
    "Activities",
    "CapacityVersions",
    "Bookings",
]
