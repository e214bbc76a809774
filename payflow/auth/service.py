"""
Résolution de l'utilisateur courant à partir d'un access token Supabase.
L'authentification elle-même (inscription, connexion) est gérée par Supabase Auth côté front.
"""
from typing import Any, Dict

from payflow.infra.supabase_client import get_supabase

# module payflow.auth.service
def get_user_from_access_token(access_token: str) -> Dict[str, Any]:
    """Récupère et normalise l'utilisateur depuis supabase.auth.get_user(access_token)."""
    res = get_supabase().auth.get_user(access_token)
    user = getattr(res, "user", None) or {}
    if not isinstance(user, dict):
        user = {
            "id": getattr(user, "id", None),
            "email": getattr(user, "email", None),
            "user_metadata": getattr(user, "user_metadata", None),
        }
    return user or {}

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Retourne {id, email, metadata, token}."""
    raw = get_user_from_access_token(access_token)
    return {
        "id": raw.get("id"),
        "email": raw.get("email"),
        "metadata": raw.get("user_metadata") or {},
        "token": access_token,
    }
