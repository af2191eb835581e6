"""Exceptions du protocole et du store."""

from __future__ import annotations


class StoreError(Exception):
    """Erreur de base remontée par le store ou par les sessions."""


class NotFound(StoreError):
    """Le code de partie (ou la ligne visée) n'existe pas."""


class Conflict(StoreError):
    """Contrainte d'unicité violée (nom d'équipe déjà pris dans la partie)."""


class TransientIO(StoreError):
    """Store momentanément injoignable; le polling prendra le relais."""


class InvariantViolation(StoreError):
    """Action refusée localement, avant toute écriture."""
