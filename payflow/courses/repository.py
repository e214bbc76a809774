"""
Accès aux données 'courses' et 'enrollments'.
- enrollments(user_id, course_id) est à la fois l'ensemble des cours d'un utilisateur
  et l'ensemble des étudiants d'un cours; l'unicité du couple rend l'inscription idempotente.
"""
from typing import List, Optional
import logging

import payflow.infra.supabase_client as supabase_client
from payflow.config import COURSES_TABLE, ENROLLMENTS_TABLE

logger = logging.getLogger(__name__)

# module payflow.courses.repository
def get_course(course_id: str) -> Optional[dict]:
    """Retourne le cours ou None s'il n'existe pas. Les erreurs d'accès remontent."""
    if not course_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table(COURSES_TABLE)
        .select("id, title, price, thumbnail, is_published")
        .eq("id", course_id)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def add_enrollment(user_id: str, course_id: str) -> None:
    """Insertion ensembliste: un doublon (user_id, course_id) est ignoré."""
    (
        supabase_client.get_service_supabase()
        .table(ENROLLMENTS_TABLE)
        .upsert(
            {"user_id": user_id, "course_id": course_id},
            on_conflict="user_id,course_id",
            ignore_duplicates=True,
        )
        .execute()
    )

def is_enrolled(user_id: str, course_id: str) -> bool:
    res = (
        supabase_client.get_service_supabase()
        .table(ENROLLMENTS_TABLE)
        .select("course_id")
        .eq("user_id", user_id)
        .eq("course_id", course_id)
        .limit(1)
        .execute()
    )
    return bool(res.data)

def list_enrolled_course_ids(user_id: str) -> List[str]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(ENROLLMENTS_TABLE)
            .select("course_id")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .execute()
        )
        return [str(r.get("course_id")) for r in (res.data or [])]
    except Exception:
        logger.exception("courses.repository.list_enrolled_course_ids failed user_id=%s", user_id)
        return []

def list_course_students(course_id: str) -> List[str]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(ENROLLMENTS_TABLE)
            .select("user_id")
            .eq("course_id", course_id)
            .execute()
        )
        return [str(r.get("user_id")) for r in (res.data or [])]
    except Exception:
        logger.exception("courses.repository.list_course_students failed course_id=%s", course_id)
        return []
