"""
Reconciliation of a local collection against the remote copy.
"""

from typing import Any, Dict, List

Item = Dict[str, Any]


def _quantity(item: Item) -> int:
    return int(item.get("quantity", 1))


def are_similar(local: List[Item], remote: List[Item]) -> bool:
    """Same product ids on both sides and every quantity equal."""
    local_quantities = {str(item["id"]): _quantity(item) for item in local}
    remote_quantities = {str(item["id"]): _quantity(item) for item in remote}
    return local_quantities == remote_quantities


def merge_cart(local: List[Item], remote: List[Item]) -> List[Item]:
    """Merge two carts keyed by product id, remote order first.

    When both sides hold exactly the same items and quantities the remote
    cart is returned unchanged: this is a reload of an already-synced cart,
    and summing would double every quantity. Otherwise quantities of items
    present on both sides are added together.
    """
    if are_similar(local, remote):
        return [dict(item) for item in remote]

    merged: Dict[str, Item] = {}
    for item in remote:
        merged[str(item["id"])] = dict(item)
    for item in local:
        item_id = str(item["id"])
        if item_id in merged:
            merged[item_id]["quantity"] = _quantity(merged[item_id]) + _quantity(item)
        else:
            merged[item_id] = dict(item)
    return list(merged.values())


def merge_wishlist(local: List[Item], remote: List[Item]) -> List[Item]:
    """De-duplicated union, remote order first."""
    merged: Dict[str, Item] = {}
    for item in remote + local:
        merged.setdefault(str(item["id"]), dict(item))
    return list(merged.values())
