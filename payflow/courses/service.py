from typing import Any, Dict, List
import logging

from . import repository

logger = logging.getLogger(__name__)

def is_enrolled(user_id: str, course_id: str) -> bool:
    """Requête d'entitlement: l'utilisateur possède-t-il ce cours ?"""
    if not user_id or not course_id:
        return False
    return repository.is_enrolled(user_id, course_id)

def enroll(user_id: str, course_id: str) -> None:
    """
    Ajoute le cours à l'ensemble de l'utilisateur et l'utilisateur à l'ensemble du cours.
    Idempotent: rejouer l'inscription ne crée pas de doublon.
    """
    repository.add_enrollment(user_id, course_id)
    logger.info("courses.enroll user_id=%s course_id=%s", user_id, course_id)

def get_course_with_status(course_id: str, user_id: str) -> Dict[str, Any] | None:
    """Détail d'un cours + indicateur 'purchased' pour l'utilisateur courant."""
    course = repository.get_course(course_id)
    if not course:
        return None
    return {"course": course, "purchased": is_enrolled(user_id, course_id)}

def list_enrolled(user_id: str) -> List[str]:
    return repository.list_enrolled_course_ids(user_id)

def list_students(course_id: str) -> List[str]:
    return repository.list_course_students(course_id)
