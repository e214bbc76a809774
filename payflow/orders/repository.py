from typing import Any, Dict, List, Optional
import logging

import payflow.infra.supabase_client as supabase_client
from payflow.config import RESTAURANTS_TABLE, MENUS_TABLE, ORDERS_TABLE

logger = logging.getLogger(__name__)

# module payflow.orders.repository
def get_restaurant(restaurant_id: str) -> Optional[dict]:
    if not restaurant_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table(RESTAURANTS_TABLE)
        .select("id, name, image")
        .eq("id", restaurant_id)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def fetch_restaurant_menus(restaurant_id: str) -> List[dict]:
    res = (
        supabase_client.get_service_supabase()
        .table(MENUS_TABLE)
        .select("id, name, price, image")
        .eq("restaurant_id", restaurant_id)
        .execute()
    )
    return res.data or []

def insert_order(row: Dict[str, Any]) -> dict:
    """Insère une commande 'pending' et retourne la ligne créée."""
    res = supabase_client.get_service_supabase().table(ORDERS_TABLE).insert(row).execute()
    rows = res.data or []
    if not rows:
        raise RuntimeError("Insertion de la commande sans retour")
    return rows[0]

def get_order(order_id: str) -> Optional[dict]:
    if not order_id:
        return None
    res = (
        supabase_client.get_service_supabase()
        .table(ORDERS_TABLE)
        .select("*")
        .eq("id", order_id)
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def confirm_order_if_pending(order_id: str, total_amount: int) -> bool:
    """
    Transition conditionnelle pending -> confirmed.
    Retourne True si une ligne a été mise à jour (False si déjà confirmée ou au-delà).
    """
    res = (
        supabase_client.get_service_supabase()
        .table(ORDERS_TABLE)
        .update({"status": "confirmed", "total_amount": total_amount})
        .eq("id", order_id)
        .eq("status", "pending")
        .execute()
    )
    return bool(res.data)

def cancel_order_if_pending(order_id: str) -> bool:
    """pending -> cancelled (checkout abandonné avant toute session payable)."""
    res = (
        supabase_client.get_service_supabase()
        .table(ORDERS_TABLE)
        .update({"status": "cancelled"})
        .eq("id", order_id)
        .eq("status", "pending")
        .execute()
    )
    return bool(res.data)

def list_user_orders(user_id: str, limit: int = 50) -> List[dict]:
    if not user_id:
        return []
    try:
        res = (
            supabase_client.get_service_supabase()
            .table(ORDERS_TABLE)
            .select("id, restaurant_id, cart_items, delivery_details, total_amount, status, created_at, restaurants(name, image)")
            .eq("user_id", user_id)
            .neq("status", "cancelled")
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("orders.repository.list_user_orders failed user_id=%s", user_id)
        return []
