"""Chargement de la banque de questions (fichier JSON local ou URL distante)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import requests

from .game import MAX_CATEGORIES, QUESTIONS_PER_CATEGORY
from .paths import QUESTIONS_PATH

logger = logging.getLogger(__name__)


def _categories(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get("categories", [])
    if not isinstance(data, list):
        raise ValueError("Format de banque de questions inattendu")
    return data


def load_question_bank(json_path: Union[str, Path] = QUESTIONS_PATH) -> List[Dict[str, Any]]:
    """Charge le fichier JSON {categories: [{name, questions: [{value, question, answer}]}]}."""
    with open(json_path, encoding="utf-8") as f:
        return _categories(json.load(f))


def _complete_question(raw: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(raw, dict) or not raw.get("question") or not raw.get("answer"):
        return None
    try:
        value = int(raw["value"])
    except (KeyError, TypeError, ValueError):
        return None
    return {"value": value, "question": raw["question"], "answer": raw["answer"]}


def fetch_question_bank(url: str, timeout: float = 10) -> Optional[List[Dict[str, Any]]]:
    """Récupère une banque distante; None si elle est injoignable ou invalide."""
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
        categories = _categories(resp.json())
    except (requests.RequestException, ValueError) as e:
        logger.error("Erreur lors du chargement de la banque distante %s: %s", url, e)
        return None
    # On ne garde que les questions complètes, et les catégories qui en ont assez
    result: List[Dict[str, Any]] = []
    for cat in categories:
        if not isinstance(cat, dict):
            continue
        questions = [q for q in map(_complete_question, cat.get("questions", [])) if q is not None]
        if len(questions) < QUESTIONS_PER_CATEGORY:
            logger.warning("Catégorie distante '%s' incomplète, ignorée", cat.get("name", ""))
            continue
        result.append({"name": cat.get("name", ""), "questions": questions[:QUESTIONS_PER_CATEGORY]})
    if not result:
        logger.error("Aucune catégorie utilisable dans la banque distante %s", url)
        return None
    return result[:MAX_CATEGORIES]


def resolve_question_bank(path: Union[str, Path] = QUESTIONS_PATH, url: Optional[str] = None) -> List[Dict[str, Any]]:
    if url:
        remote = fetch_question_bank(url)
        if remote:
            return remote
        logger.warning("Banque distante indisponible, repli sur %s", path)
    return load_question_bank(path)
