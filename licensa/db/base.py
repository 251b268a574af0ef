from licensa.models.license import Base, License
from licensa.models.settings import AppSettings

__all__ = ["AppSettings", "Base", "License"]
