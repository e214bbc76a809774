"""
Couche service des commandes restaurant.
- Construit une commande 'pending' à partir d'un panier; les prix viennent des menus du restaurant.
- Confirme la commande quand le paiement est réconcilié (pending -> confirmed).
- Annule la commande si la session de paiement n'a pas pu être créée (pending -> cancelled).
"""
from typing import Any, Dict, List
import logging

from payflow.catalog.service import price_from_row, to_minor_units
from payflow.payments.errors import SubjectNotFound
from . import repository

logger = logging.getLogger(__name__)


class InvalidCart(ValueError):
    pass


# module payflow.orders.service
def aggregate_quantities(items: List[Dict[str, Any]]) -> Dict[str, int]:
    """
    Agrège un panier brut [{menu_id, quantity}, ...] en {menu_id: total_quantity}.
    - Ignore les lignes invalides (id vide, quantity <= 0).
    - Lève InvalidCart si aucune ligne valide n'est présente.
    """
    quantities: Dict[str, int] = {}
    for it in items or []:
        menu_id = str(it.get("menu_id") or "").strip()
        qty = int(it.get("quantity") or 0)
        if not menu_id or qty <= 0:
            continue
        quantities[menu_id] = quantities.get(menu_id, 0) + qty
    if not quantities:
        raise InvalidCart("Panier invalide")
    return quantities

def build_cart_items(menus: List[Dict[str, Any]], quantities: Dict[str, int]) -> List[Dict[str, Any]]:
    """
    Lignes de commande figées (nom, image, prix unitaire en unités mineures, quantité).
    Un menu_id absent du restaurant invalide tout le panier.
    """
    menus_by_id = {str(m.get("id")): m for m in menus}
    cart_items: List[Dict[str, Any]] = []
    for menu_id, qty in quantities.items():
        menu = menus_by_id.get(menu_id)
        if not menu:
            raise InvalidCart(f"Menu introuvable: {menu_id}")
        unit_amount = to_minor_units(price_from_row(menu))
        if unit_amount <= 0:
            raise InvalidCart(f"Prix invalide pour le menu {menu_id}")
        cart_items.append({
            "menu_id": menu_id,
            "name": menu.get("name") or "Article",
            "image": menu.get("image") or "",
            "price": unit_amount,
            "quantity": qty,
        })
    return cart_items

def create_pending_order(user_id: str, restaurant_id: str, items: List[Dict[str, Any]], delivery_details: Dict[str, Any]) -> Dict[str, Any]:
    restaurant = repository.get_restaurant(restaurant_id)
    if not restaurant:
        raise SubjectNotFound("Restaurant introuvable")
    quantities = aggregate_quantities(items)
    cart_items = build_cart_items(repository.fetch_restaurant_menus(restaurant_id), quantities)
    order = repository.insert_order({
        "user_id": user_id,
        "restaurant_id": restaurant_id,
        "delivery_details": delivery_details,
        "cart_items": cart_items,
        "total_amount": sum(i["price"] * i["quantity"] for i in cart_items),
        "status": "pending",
    })
    logger.info("orders.create_pending order_id=%s user_id=%s items=%s", order.get("id"), user_id, len(cart_items))
    return order

def confirm_order(order_id: str, settled_amount: int) -> bool:
    """
    pending -> confirmed avec le montant réglé.
    Retourne False si la commande était déjà confirmée (rejeu): ce n'est pas une erreur.
    """
    confirmed = repository.confirm_order_if_pending(order_id, settled_amount)
    if confirmed:
        logger.info("orders.confirm order_id=%s total_amount=%s", order_id, settled_amount)
    else:
        order = repository.get_order(order_id)
        if not order:
            raise SubjectNotFound("Commande introuvable")
        logger.info("orders.confirm noop order_id=%s status=%s", order_id, order.get("status"))
    return confirmed

def cancel_pending_order(order_id: str, reason: str) -> bool:
    cancelled = repository.cancel_order_if_pending(order_id)
    logger.info("orders.cancel order_id=%s reason=%s cancelled=%s", order_id, reason, cancelled)
    return cancelled

def list_orders(user_id: str) -> List[Dict[str, Any]]:
    return repository.list_user_orders(user_id)
