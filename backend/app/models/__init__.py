"""
Modelli Database SQLAlchemy
Progetto: Sales Tracker (Abbonamenti e Rate)

Import centralizzato di tutti i modelli per la creazione delle tabelle.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class per tutti i modelli SQLAlchemy."""
    pass


from app.models.sale import Sale

__all__ = [
    "Base",
    "Sale",
]
