from .database import init_db, get_db, get_db_dependency, engine, SessionLocal
from .models import (
    Base, Provider, Destination, Region,
    AiraloPackage, EsimAccessPackage, EsimGoPackage, MayaPackage,
    UnifiedPackage, PlatformSetting,
)

__all__ = [
    "init_db", "get_db", "get_db_dependency", "engine", "SessionLocal",
    "Base", "Provider", "Destination", "Region",
    "AiraloPackage", "EsimAccessPackage", "EsimGoPackage", "MayaPackage",
    "UnifiedPackage", "PlatformSetting",
]
