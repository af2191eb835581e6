#!/usr/bin/env python3
"""
Script de démarrage du serveur triviabuzz (store partagé + flux Socket.IO)
"""
import uvicorn

from triviabuzz.config import load_settings
from triviabuzz.logging_config import configure_logging

if __name__ == "__main__":
    settings = load_settings()
    logger = configure_logging(settings.log_level)
    logger.info("Démarrage du serveur triviabuzz sur http://%s:%d", settings.host, settings.port)
    logger.info("Hôte:   triviabuzz host --session host")
    logger.info("Équipe: triviabuzz play --code CODE --name NOM")

    uvicorn.run(
        "triviabuzz.server.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
